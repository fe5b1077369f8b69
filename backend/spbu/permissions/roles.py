# Overview: Role codes for the SPBU management system.

DEVELOPER = "DEVELOPER"
ADMINISTRATOR = "ADMINISTRATOR"
OWNER = "OWNER"
OWNER_GROUP = "OWNER_GROUP"
MANAGER = "MANAGER"
OPERATOR = "OPERATOR"
UNLOADER = "UNLOADER"
FINANCE = "FINANCE"
ACCOUNTING = "ACCOUNTING"

ALL_ROLES = frozenset({
    DEVELOPER,
    ADMINISTRATOR,
    OWNER,
    OWNER_GROUP,
    MANAGER,
    OPERATOR,
    UNLOADER,
    FINANCE,
    ACCOUNTING,
})

# Platform-wide: passes every role check and reaches every station
SUPERUSER_ROLES = frozenset({DEVELOPER})

# Pass role-list checks; station access is still limited to their owner
ROLE_CHECK_BYPASS = frozenset({DEVELOPER, ADMINISTRATOR})

# Reach every ACTIVE station of their owner without explicit assignment
OWNER_SCOPED_ROLES = frozenset({ADMINISTRATOR, OWNER_GROUP})
