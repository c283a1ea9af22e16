from .auth import User, SessionToken, ROLE_USER, ROLE_ADMIN
from .activity import AdminActivity, ImmutableRecordError
from .service_status import ServiceStatus, SERVICE_STATUS_ID, DEFAULT_STOPPED_MESSAGE

__all__ = [
    'User', 'SessionToken', 'ROLE_USER', 'ROLE_ADMIN',
    'AdminActivity', 'ImmutableRecordError',
    'ServiceStatus', 'SERVICE_STATUS_ID', 'DEFAULT_STOPPED_MESSAGE',
]
