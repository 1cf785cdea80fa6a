from .models.enums import ProType

DEFAULT_ROLES = [
    ("HOMEOWNER", "Owns one or more homes and approves documented work"),
    ("PRO", "Contractor, realtor or inspector working on connected homes"),
    ("ADMIN", "Platform administrator with console access"),
]

ROLE_NAMES = {name for name, _ in DEFAULT_ROLES}

PRO_TYPES = tuple(pro_type.value for pro_type in ProType)

REQUEST_URGENCIES = ("LOW", "NORMAL", "HIGH", "EMERGENCY")

VERIFICATION_METHODS = ("POSTCARD", "DOCUMENT", "MANUAL")

# Admin list views
ADMIN_PAGE_SIZE_DEFAULT = 20
ADMIN_PAGE_SIZE_MIN = 10
ADMIN_PAGE_SIZE_MAX = 50

USER_SORT_COLUMNS = ("created_at", "email", "name", "role")
HOME_SORT_COLUMNS = ("created_at", "address", "city", "state")
