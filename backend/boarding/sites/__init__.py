"Site utilities: request-scoped site selection, context, and resolution helpers."

from .constants import SITE_HEADER, SITE_QUERY_PARAM  # noqa: F401
from .context import SiteContext  # noqa: F401
from .errors import SiteNotFound, SiteNotSelected  # noqa: F401
from .middleware import RequestContextMiddleware  # noqa: F401
