"""
Recipe execution — package re-exports.

Each symbol lives in its single-responsibility module inside the
appropriate layer (data → domain → resolver → execution →
orchestration)::

    from formula_runner.core.services.recipe_run import parse, run_recipe
"""

# ── L0: Data ──
from formula_runner.core.services.recipe_run.data.recipe_parser import parse  # noqa: F401
from formula_runner.core.services.recipe_run.data.template import (  # noqa: F401
    find_placeholders,
    parse_assignments,
    render_template,
)

# ── L2: Resolver ──
from formula_runner.core.services.recipe_run.resolver.dependency_resolution import (  # noqa: F401
    DependencyLookup,
    MappingLookup,
    PathLookup,
    resolve,
)

# ── L4: Execution ──
from formula_runner.core.services.recipe_run.execution.build_executor import (  # noqa: F401
    execute,
)
from formula_runner.core.services.recipe_run.execution.source import (  # noqa: F401
    LocalSourceFetcher,
    SourceFetcher,
    unpack_source,
    verify_digest,
)
from formula_runner.core.services.recipe_run.execution.stager import (  # noqa: F401
    commit_stage,
    rollback_stage,
    stage,
    unstage,
)
from formula_runner.core.services.recipe_run.execution.subprocess_runner import (  # noqa: F401
    run_command,
)
from formula_runner.core.services.recipe_run.execution.verifier import verify  # noqa: F401

# ── L5: Orchestration ──
from formula_runner.core.services.recipe_run.orchestration.orchestrator import (  # noqa: F401
    run_formula_file,
    run_recipe,
)
