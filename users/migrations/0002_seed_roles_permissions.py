from django.db import migrations

from users.roles import seed_roles


def seed_roles_permissions(apps, schema_editor):
    """Seed default roles and permissions."""
    seed_roles(
        apps.get_model('users', 'Role'),
        apps.get_model('users', 'Permission'),
        apps.get_model('users', 'RolePermission'),
    )


def reverse_seed(apps, schema_editor):
    Permission = apps.get_model('users', 'Permission')
    Role = apps.get_model('users', 'Role')

    Permission.objects.all().delete()
    Role.objects.all().delete()


class Migration(migrations.Migration):

    dependencies = [
        ('users', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(seed_roles_permissions, reverse_seed),
    ]
