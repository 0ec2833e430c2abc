import re
from datetime import date, time
from urllib.parse import urlencode

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .authn import hash_password
from .config import settings
from .errors import (
    EmailAlreadyRegistered,
    InvalidStatusTransition,
    ManagerNotFound,
    ReservationNotFound,
    ServiceInUse,
    ServiceNotFound,
    UserNotFound,
    ValidationFailed,
)
from .models import STAFF_ROLES, Reservation, ReservationStatus, Service, User, UserRole, utc_now_naive
from .schemas import ManagerOut, ReservationOut, RoleOption

logger = structlog.get_logger("booking_desk.services")

ALLOWED_STATUS_TRANSITIONS = {
    ReservationStatus.PENDING.value: {ReservationStatus.CONFIRMED.value, ReservationStatus.REJECTED.value},
    ReservationStatus.CONFIRMED.value: set(),
    ReservationStatus.REJECTED.value: set(),
}


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _clean_optional(value: str | None) -> str | None:
    return (value or "").strip() or None


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def list_active_services(db: Session) -> list[Service]:
    stmt = select(Service).where(Service.is_active.is_(True)).order_by(Service.name.asc())
    return db.execute(stmt).scalars().all()


def list_services(db: Session) -> list[Service]:
    return db.execute(select(Service).order_by(Service.id.asc())).scalars().all()


def get_service(db: Session, service_id: int) -> Service | None:
    return db.get(Service, service_id)


def get_service_or_raise(db: Session, service_id: int) -> Service:
    service = get_service(db, service_id)
    if service is None:
        raise ServiceNotFound(f"Service {service_id} not found")
    return service


def create_service(
    db: Session,
    name: str,
    price: int = 0,
    description: str | None = None,
    duration_min: int = 60,
    is_active: bool = True,
) -> Service:
    service = Service(
        name=name.strip(),
        price=int(price),
        description=_clean_optional(description),
        duration_min=int(duration_min),
        is_active=bool(is_active),
        created_at=utc_now_naive(),
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    logger.info("service_created", service_id=service.id, name=service.name)
    return service


def update_service(
    db: Session,
    service_id: int,
    name: str,
    price: int,
    description: str | None,
    duration_min: int,
    is_active: bool,
) -> Service:
    service = get_service_or_raise(db, service_id)
    service.name = name.strip()
    service.price = int(price)
    service.description = _clean_optional(description)
    service.duration_min = int(duration_min)
    service.is_active = bool(is_active)
    db.commit()
    db.refresh(service)
    logger.info("service_updated", service_id=service.id)
    return service


def delete_service(db: Session, service_id: int) -> None:
    service = get_service_or_raise(db, service_id)
    in_use = db.execute(
        select(func.count(Reservation.id)).where(Reservation.service_id == service.id)
    ).scalar_one()
    if int(in_use) > 0:
        raise ServiceInUse(f"Service {service_id} is referenced by {int(in_use)} reservations")
    db.delete(service)
    db.commit()
    logger.info("service_deleted", service_id=service_id)


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


def parse_role(value: str | UserRole) -> UserRole:
    if isinstance(value, UserRole):
        return value
    try:
        return UserRole[str(value or "").strip().upper()]
    except KeyError:
        raise ValidationFailed(f"Unknown role: {value}") from None


def role_options() -> list[RoleOption]:
    return [RoleOption(value=role.value, label=role.label) for role in UserRole]


def get_user(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(
        select(User).where(User.email == normalize_email(email))
    ).scalar_one_or_none()


def list_users(db: Session) -> list[User]:
    stmt = select(User).where(User.is_active.is_(True)).order_by(User.name.asc())
    return db.execute(stmt).scalars().all()


def list_staff_users(db: Session) -> list[User]:
    stmt = (
        select(User)
        .where(User.is_active.is_(True), User.role.in_(list(STAFF_ROLES)))
        .order_by(User.name.asc())
    )
    return db.execute(stmt).scalars().all()


def list_users_by_role(db: Session, role: str | UserRole) -> list[User]:
    stmt = select(User).where(User.role == parse_role(role)).order_by(User.name.asc())
    return db.execute(stmt).scalars().all()


def count_managed_reservations(db: Session, user_id: int) -> int:
    count = db.execute(
        select(func.count(Reservation.id)).where(Reservation.manager_id == user_id)
    ).scalar_one()
    return int(count or 0)


def list_managers_by_activity(db: Session) -> list[User]:
    managed = func.count(Reservation.id)
    stmt = (
        select(User)
        .outerjoin(Reservation, Reservation.manager_id == User.id)
        .where(User.is_active.is_(True), User.role != UserRole.CLIENT)
        .group_by(User.id)
        .order_by(managed.desc(), User.name.asc())
    )
    return db.execute(stmt).scalars().all()


def create_user(
    db: Session,
    name: str,
    phone: str,
    email: str,
    role: str | UserRole = UserRole.CLIENT,
    password: str | None = None,
    department: str | None = None,
    is_active: bool = True,
) -> User:
    normalized_email = normalize_email(email)
    if get_user_by_email(db, normalized_email):
        raise EmailAlreadyRegistered(f"Email {normalized_email} is already registered")

    now = utc_now_naive()
    user = User(
        name=name.strip(),
        phone=phone.strip(),
        email=normalized_email,
        role=parse_role(role),
        password_hash=hash_password(password) if password else None,
        department=_clean_optional(department),
        is_active=bool(is_active),
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise EmailAlreadyRegistered(f"Email {normalized_email} is already registered") from None
    db.refresh(user)
    logger.info("user_created", user_id=user.id, role=user.role.value)
    return user


def update_user(
    db: Session,
    user_id: int,
    name: str,
    phone: str,
    email: str,
    role: str | UserRole,
    password: str | None = None,
    department: str | None = None,
    is_active: bool = True,
) -> User:
    user = get_user(db, user_id)
    if user is None:
        raise UserNotFound(f"User {user_id} not found")

    normalized_email = normalize_email(email)
    if normalized_email != user.email:
        holder = get_user_by_email(db, normalized_email)
        if holder is not None and holder.id != user.id:
            raise EmailAlreadyRegistered(f"Email {normalized_email} is already registered")

    user.name = name.strip()
    user.phone = phone.strip()
    user.email = normalized_email
    user.role = parse_role(role)
    user.department = _clean_optional(department)
    user.is_active = bool(is_active)
    if password:
        user.password_hash = hash_password(password)
    user.updated_at = utc_now_naive()
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise EmailAlreadyRegistered(f"Email {normalized_email} is already registered") from None
    db.refresh(user)
    logger.info("user_updated", user_id=user.id)
    return user


def deactivate_user(db: Session, user_id: int) -> User:
    user = get_user(db, user_id)
    if user is None:
        raise UserNotFound(f"User {user_id} not found")
    user.is_active = False
    user.updated_at = utc_now_naive()
    db.commit()
    db.refresh(user)
    logger.info("user_deactivated", user_id=user.id)
    return user


# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------


def resolve_or_create_requester(db: Session, name: str, phone: str, email: str) -> User:
    """Find the directory entry for ``email`` or create a client entry for it.

    An existing entry is returned untouched: the stored name and phone win
    over whatever the new booking carried.
    """
    normalized_email = normalize_email(email)
    existing = get_user_by_email(db, normalized_email)
    if existing:
        return existing

    now = utc_now_naive()
    requester = User(
        name=name.strip(),
        phone=phone.strip(),
        email=normalized_email,
        role=UserRole.CLIENT,
        password_hash=None,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(requester)
    try:
        db.commit()
    except IntegrityError:
        # Another request registered the same email between lookup and insert.
        db.rollback()
        existing = get_user_by_email(db, normalized_email)
        if existing:
            return existing
        raise EmailAlreadyRegistered(f"Email {normalized_email} is already registered") from None
    db.refresh(requester)
    logger.info("requester_created", user_id=requester.id)
    return requester


def create_reservation(
    db: Session,
    requester: User,
    service_id: int,
    day: date,
    at: time,
    notes: str | None = None,
) -> Reservation:
    service = get_service_or_raise(db, service_id)
    now = utc_now_naive()
    reservation = Reservation(
        requester_id=requester.id,
        service_id=service.id,
        day=day,
        at=at,
        status=ReservationStatus.PENDING.value,
        notes=_clean_optional(notes),
        created_at=now,
        updated_at=now,
    )
    db.add(reservation)
    db.commit()
    db.refresh(reservation)
    logger.info(
        "reservation_created",
        reservation_id=reservation.id,
        requester_id=requester.id,
        service_id=service.id,
        day=day.isoformat(),
    )
    return reservation


def book_reservation(
    db: Session,
    name: str,
    phone: str,
    email: str,
    service_id: int,
    day: date,
    at: time,
    notes: str | None = None,
) -> Reservation:
    # Resolve the service first so a bad id never leaves a stray directory entry.
    get_service_or_raise(db, service_id)
    requester = resolve_or_create_requester(db, name=name, phone=phone, email=email)
    return create_reservation(db, requester=requester, service_id=service_id, day=day, at=at, notes=notes)


def get_reservation_by_id(db: Session, reservation_id: int) -> Reservation | None:
    return db.get(Reservation, reservation_id)


def get_reservation_or_raise(db: Session, reservation_id: int) -> Reservation:
    reservation = get_reservation_by_id(db, reservation_id)
    if reservation is None:
        raise ReservationNotFound(f"Reservation {reservation_id} not found")
    return reservation


def parse_status(value: str | ReservationStatus) -> ReservationStatus:
    if isinstance(value, ReservationStatus):
        return value
    try:
        return ReservationStatus(str(value or "").strip())
    except ValueError:
        raise ValidationFailed(f"Unknown reservation status: {value}") from None


def list_reservations(
    db: Session,
    status: str | None = None,
    day: date | None = None,
) -> list[Reservation]:
    if status is not None:
        stmt = select(Reservation).where(Reservation.status == status).order_by(Reservation.id.asc())
    elif day is not None:
        stmt = select(Reservation).where(Reservation.day == day).order_by(Reservation.id.asc())
    else:
        stmt = select(Reservation).order_by(Reservation.day.desc(), Reservation.at.desc())
    return db.execute(stmt).scalars().all()


def _check_transition(current: str, target: str) -> None:
    if target == current or not settings.RESERVATION_STRICT_TRANSITIONS:
        return
    if target not in ALLOWED_STATUS_TRANSITIONS.get(current, set()):
        raise InvalidStatusTransition(f"Invalid status transition: {current} -> {target}")


def transition_reservation(
    db: Session,
    reservation_id: int,
    new_status: str | ReservationStatus,
    manager_email: str | None = None,
) -> Reservation:
    reservation = get_reservation_or_raise(db, reservation_id)
    target = parse_status(new_status).value

    manager = None
    if manager_email is not None:
        manager = get_user_by_email(db, manager_email)
        if manager is None:
            raise ManagerNotFound(f"Manager {normalize_email(manager_email)} not found")

    current = reservation.status
    _check_transition(current, target)

    if manager is not None:
        reservation.manager_id = manager.id
    reservation.status = target
    reservation.updated_at = utc_now_naive()
    db.commit()
    db.refresh(reservation)
    logger.info(
        "reservation_status_changed",
        reservation_id=reservation.id,
        from_status=current,
        to_status=target,
        manager_id=reservation.manager_id,
    )
    return reservation


def confirm_reservation(db: Session, reservation_id: int, manager_email: str | None = None) -> Reservation:
    return transition_reservation(db, reservation_id, ReservationStatus.CONFIRMED, manager_email)


def reject_reservation(db: Session, reservation_id: int, manager_email: str | None = None) -> Reservation:
    return transition_reservation(db, reservation_id, ReservationStatus.REJECTED, manager_email)


def project_reservation(reservation: Reservation) -> ReservationOut:
    requester = reservation.requester
    manager = reservation.manager
    return ReservationOut(
        id=reservation.id,
        client_name=requester.name,
        client_phone=requester.phone,
        client_email=requester.email,
        service_name=reservation.service.name,
        day=reservation.day,
        at=reservation.at,
        status=reservation.status,
        notes=reservation.notes,
        created_at=reservation.created_at,
        updated_at=reservation.updated_at,
        manager=(
            ManagerOut(id=manager.id, name=manager.name, email=manager.email, role=manager.role.label)
            if manager is not None
            else None
        ),
    )


def _format_time(value: time) -> str:
    if value.second == 0 and value.microsecond == 0:
        return value.strftime("%H:%M")
    if value.microsecond == 0:
        return value.strftime("%H:%M:%S")
    if value.microsecond % 1000 == 0:
        return f"{value.strftime('%H:%M:%S')}.{value.microsecond // 1000:03d}"
    return value.isoformat()


def _phone_digits(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


def build_notification_message(reservation: Reservation) -> str:
    return settings.NOTIFICATION_TEMPLATE.format(
        name=reservation.requester.name,
        service=reservation.service.name,
        date=reservation.day.isoformat(),
        time=_format_time(reservation.at),
        status=reservation.status.upper(),
    )


def build_notification_link(db: Session, reservation_id: int) -> str:
    reservation = get_reservation_or_raise(db, reservation_id)
    message = build_notification_message(reservation)
    base_url = settings.NOTIFICATION_BASE_URL.format(phone=_phone_digits(reservation.requester.phone))
    # "*" stays literal, "~" is escaped.
    query = urlencode({"text": message}, safe="*").replace("~", "%7E")
    return f"{base_url}?{query}"
