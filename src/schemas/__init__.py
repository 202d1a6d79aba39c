from .base_schemas import *
from .access_schemas import *
from .comment_schemas import *
from .analytics_schemas import *
from .notification_schemas import *
from .resource_schemas import *
