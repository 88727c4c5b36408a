"""
Default roles and permission codenames for survey RBAC.

Used both by the seeding data migration (with historical models) and by
test fixtures (with the live models), so the seeding function takes the
model classes as arguments.
"""

PERMISSIONS = [
    ('create_survey', 'Create new surveys'),
    ('edit_survey', 'Edit survey metadata and questions'),
    ('delete_survey', 'Delete surveys'),
    ('publish_survey', 'Publish, close and invite respondents to surveys'),
    ('manage_access', 'Change survey access policies'),
    ('view_responses', 'View survey responses'),
    ('view_analytics', 'View survey analytics and charts'),
    ('manage_users', 'Manage users and roles'),
    ('view_audit_logs', 'View audit logs'),
]

ROLES = {
    'admin': (
        'Full access to all features',
        [codename for codename, _ in PERMISSIONS],
    ),
    'manager': (
        'Can edit, publish and analyse any survey',
        [
            'create_survey', 'edit_survey', 'delete_survey', 'publish_survey',
            'manage_access', 'view_responses', 'view_analytics',
        ],
    ),
    'author': (
        'Creates surveys and manages the ones they own',
        ['create_survey'],
    ),
    'viewer': (
        'Read-only access to responses and analytics',
        ['view_responses', 'view_analytics'],
    ),
}


def seed_roles(Role, Permission, RolePermission):
    """Create the default permissions and roles if they are missing."""
    permissions = {}
    for codename, description in PERMISSIONS:
        permissions[codename], _ = Permission.objects.get_or_create(
            codename=codename,
            defaults={'description': description},
        )

    for name, (description, codenames) in ROLES.items():
        role, _ = Role.objects.get_or_create(name=name, defaults={'description': description})
        for codename in codenames:
            RolePermission.objects.get_or_create(role=role, permission=permissions[codename])
