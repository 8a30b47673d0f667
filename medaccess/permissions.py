"""
Static role -> capability table used to build the role menus.

Doctors only see patient details after `check_authorization` succeeds;
`can_view_all_patient_data` is reserved for administrators.
"""
# medaccess/permissions.py

from medaccess.models import UserRole

NO_PERMISSIONS = {
    'can_view_patients': False,
    'can_view_doctors': False,
    'can_view_all_patient_data': False,
    'can_request_patient_access': False,
    'can_view_own_data': False,
    'can_review_access_requests': False,
    'can_view_authorization_log': False,
}

ROLE_PERMISSIONS = {
    UserRole.ADMIN: {
        **NO_PERMISSIONS,
        'can_view_patients': True,
        'can_view_doctors': True,
        'can_view_all_patient_data': True,
        'can_view_authorization_log': True,
    },
    UserRole.DOCTOR: {
        **NO_PERMISSIONS,
        'can_view_patients': True,
        'can_view_doctors': True,
        'can_request_patient_access': True,
        'can_view_own_data': True,
    },
    UserRole.PATIENT: {
        **NO_PERMISSIONS,
        'can_view_doctors': True,
        'can_view_own_data': True,
        'can_review_access_requests': True,
    },
}


def get_permissions(user) -> dict:
    """Returns the capability flags for `user` (None means signed out)."""
    if user is None:
        return dict(NO_PERMISSIONS)
    return dict(ROLE_PERMISSIONS.get(user.role, NO_PERMISSIONS))
