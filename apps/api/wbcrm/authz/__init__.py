from wbcrm.authz.models import SharedEntity, User

__all__ = ["User", "SharedEntity"]
