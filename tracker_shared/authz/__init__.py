from tracker_shared.authz.capabilities import (  # noqa: F401
    DERIVED_CAPABILITIES,
    CapabilityEvaluator,
    RowOwnership,
    evaluator,
)
from tracker_shared.authz.errors import (  # noqa: F401
    AuthorizationError,
    Forbidden,
    InvalidRole,
    NotFound,
    Unauthorized,
)
from tracker_shared.authz.impersonation import ViewAsOverlay  # noqa: F401
from tracker_shared.authz.resolver import ContextResolver, MembershipStore, resolve_context  # noqa: F401
