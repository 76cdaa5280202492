"""Role gate.

Exact match between the caller's persisted role and the role a route
requires. There is no hierarchy: a route that requires User does not
implicitly admit Admin unless it names both.
"""

from photaro.models.user import User, UserRole


def authorize(user: User, required_role: UserRole) -> bool:
    """Return True if the user's persisted role is exactly ``required_role``.

    Args:
        user: Authenticated user record (re-read from the store).
        required_role: Role the route requires.

    Returns:
        Whether access is granted.
    """
    try:
        role = UserRole(user.role)
    except ValueError:
        return False
    return role is required_role
