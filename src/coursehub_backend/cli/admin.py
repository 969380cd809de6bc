import click
from sqlalchemy.orm import Session

from coursehub_backend.database import get_db, transaction
from coursehub_backend.model.auth import User, UserRole, ROLE_TAGS
from coursehub_backend.permissions.auth import hash_password, normalize_email, sync_role_profiles
from coursehub_backend.utils.password_validation import validate_password


def _find_user(db: Session, email: str) -> User:
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if user is None:
        raise click.ClickException(f"No user with email {email}")
    return user


def _role_tags(db: Session, user: User) -> list:
    return [row[0] for row in db.query(UserRole.role).filter(UserRole.user_id == user.id).all()]


@click.command()
@click.option("--email", "-e", "email", prompt=True)
@click.option("--password", "-p", "password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--first-name", "first_name", prompt=True)
@click.option("--last-name", "last_name", prompt=True)
@click.option("--role", "-r", "roles", multiple=True, type=click.Choice(ROLE_TAGS), default=["student"], show_default=True)
def create_user(email, password, first_name, last_name, roles):

    valid, errors = validate_password(password)
    if not valid:
        raise click.ClickException(errors[0])

    with next(get_db()) as db:
        if db.query(User.id).filter(User.email == normalize_email(email)).first() is not None:
            raise click.ClickException("Email already exists")

        user = User(
            email=normalize_email(email),
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            is_active=True
        )

        with transaction(db):
            db.add(user)
            db.flush()
            for role in sorted(set(roles)):
                db.add(UserRole(user_id=user.id, role=role))
            sync_role_profiles(db, user.id, roles)

        click.echo(f"Created user {user.id} ({user.email}) with roles: {', '.join(sorted(set(roles)))}")


@click.command()
@click.argument("email")
@click.argument("role", type=click.Choice(ROLE_TAGS))
def add_role(email, role):

    with next(get_db()) as db:
        user = _find_user(db, email)

        if db.query(UserRole.id).filter(UserRole.user_id == user.id, UserRole.role == role).first() is not None:
            click.echo(f"{user.email} already has role {role}")
            return

        with transaction(db):
            db.add(UserRole(user_id=user.id, role=role))
            db.flush()
            sync_role_profiles(db, user.id, _role_tags(db, user))

        click.echo(f"Granted {role} to {user.email}")


@click.command()
@click.argument("email")
@click.argument("role", type=click.Choice(ROLE_TAGS))
def remove_role(email, role):

    with next(get_db()) as db:
        user = _find_user(db, email)

        with transaction(db):
            deleted = db.query(UserRole).filter(UserRole.user_id == user.id, UserRole.role == role).delete(synchronize_session=False)
            sync_role_profiles(db, user.id, _role_tags(db, user))

        if deleted:
            click.echo(f"Revoked {role} from {user.email}")
        else:
            click.echo(f"{user.email} did not have role {role}")


@click.command()
def list_users():

    with next(get_db()) as db:
        rows = (
            db.query(User, UserRole.role)
            .outerjoin(UserRole, UserRole.user_id == User.id)
            .order_by(User.email)
            .all()
        )

        users = {}
        for user, role in rows:
            entry = users.setdefault(user.id, (user, []))
            if role is not None:
                entry[1].append(role)

        for user, roles in users.values():
            status = "active" if user.is_active else "inactive"
            click.echo(f"{user.email:40} {status:9} {', '.join(sorted(roles)) or '-'}")


@click.group()
def admin():
    pass

admin.add_command(create_user,"create-user")
admin.add_command(add_role,"add-role")
admin.add_command(remove_role,"remove-role")
admin.add_command(list_users,"list-users")
