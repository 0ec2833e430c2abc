from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from .authn import AuthIdentity, identity_from_authorization_header
from .config import settings
from .db import get_db
from .errors import ConflictError, NotFoundError, ValidationFailed
from .models import STAFF_ROLES, Service, User
from .reports import monthly_confirmed, popular_services, reservation_summary
from .schemas import (
    MonthlyCountOut,
    NotificationLinkOut,
    ReservationCreate,
    ReservationOut,
    ReservationSummaryOut,
    RoleOption,
    ServiceIn,
    ServiceOut,
    ServiceUsageOut,
    UserIn,
    UserOut,
)
from .services import (
    book_reservation,
    build_notification_link,
    confirm_reservation,
    count_managed_reservations,
    create_service,
    create_user,
    deactivate_user,
    delete_service,
    get_reservation_by_id,
    get_service,
    get_user,
    list_active_services,
    list_managers_by_activity,
    list_reservations,
    list_services,
    list_staff_users,
    list_users,
    list_users_by_role,
    project_reservation,
    reject_reservation,
    role_options,
    update_service,
    update_user,
)

router = APIRouter(prefix="/api")


def require_staff(authorization: Optional[str] = Header(default=None)) -> AuthIdentity | None:
    if not settings.AUTH_REQUIRED:
        return None
    identity = identity_from_authorization_header(authorization)
    if not identity:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing bearer token")
    if identity.role not in {role.value for role in STAFF_ROLES}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff role required")
    return identity


def _to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _to_service_out(service: Service) -> ServiceOut:
    return ServiceOut(
        id=service.id,
        name=service.name,
        price=service.price,
        description=service.description,
        duration_min=service.duration_min,
        is_active=service.is_active,
        created_at=service.created_at,
    )


def _to_user_out(db: Session, user: User) -> UserOut:
    return UserOut(
        id=user.id,
        name=user.name,
        email=user.email,
        phone=user.phone,
        role=user.role.value,
        role_label=user.role.label,
        department=user.department,
        is_active=user.is_active,
        created_at=user.created_at,
        updated_at=user.updated_at,
        managed_reservations=count_managed_reservations(db, user.id),
    )


# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------


@router.post("/reservations", response_model=ReservationOut, status_code=status.HTTP_201_CREATED)
def add_reservation(payload: ReservationCreate, db: Session = Depends(get_db)):
    try:
        reservation = book_reservation(
            db=db,
            name=payload.name,
            phone=payload.phone,
            email=payload.email,
            service_id=payload.service_id,
            day=payload.day,
            at=payload.at,
            notes=payload.notes,
        )
    except (NotFoundError, ConflictError) as exc:
        raise _to_http_error(exc)
    return project_reservation(reservation)


@router.get("/reservations", response_model=List[ReservationOut])
def get_reservations(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    day: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
):
    rows = list_reservations(db, status=status_filter, day=day)
    return [project_reservation(r) for r in rows]


@router.get("/reservations/{reservation_id}", response_model=ReservationOut)
def get_reservation(reservation_id: int, db: Session = Depends(get_db)):
    reservation = get_reservation_by_id(db, reservation_id)
    if not reservation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reservation not found")
    return project_reservation(reservation)


@router.put("/reservations/{reservation_id}/confirm", response_model=ReservationOut)
def confirm(
    reservation_id: int,
    manager_email: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    _staff: AuthIdentity | None = Depends(require_staff),
):
    try:
        reservation = confirm_reservation(db, reservation_id, manager_email)
    except (NotFoundError, ConflictError, ValidationFailed) as exc:
        raise _to_http_error(exc)
    return project_reservation(reservation)


@router.put("/reservations/{reservation_id}/reject", response_model=ReservationOut)
def reject(
    reservation_id: int,
    manager_email: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    _staff: AuthIdentity | None = Depends(require_staff),
):
    try:
        reservation = reject_reservation(db, reservation_id, manager_email)
    except (NotFoundError, ConflictError, ValidationFailed) as exc:
        raise _to_http_error(exc)
    return project_reservation(reservation)


@router.get("/reservations/{reservation_id}/notification-link", response_model=NotificationLinkOut)
def notification_link(reservation_id: int, db: Session = Depends(get_db)):
    try:
        link = build_notification_link(db, reservation_id)
    except NotFoundError as exc:
        raise _to_http_error(exc)
    return NotificationLinkOut(link=link)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@router.get("/services", response_model=List[ServiceOut])
def get_services(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    rows = list_services(db) if include_inactive else list_active_services(db)
    return [_to_service_out(s) for s in rows]


@router.get("/services/{service_id}", response_model=ServiceOut)
def get_one_service(service_id: int, db: Session = Depends(get_db)):
    service = get_service(db, service_id)
    if not service:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Service not found")
    return _to_service_out(service)


@router.post("/services", response_model=ServiceOut, status_code=status.HTTP_201_CREATED)
def add_service(
    payload: ServiceIn,
    db: Session = Depends(get_db),
    _staff: AuthIdentity | None = Depends(require_staff),
):
    service = create_service(
        db,
        name=payload.name,
        price=payload.price,
        description=payload.description,
        duration_min=payload.duration_min,
        is_active=payload.is_active,
    )
    return _to_service_out(service)


@router.put("/services/{service_id}", response_model=ServiceOut)
def edit_service(
    service_id: int,
    payload: ServiceIn,
    db: Session = Depends(get_db),
    _staff: AuthIdentity | None = Depends(require_staff),
):
    try:
        service = update_service(
            db,
            service_id,
            name=payload.name,
            price=payload.price,
            description=payload.description,
            duration_min=payload.duration_min,
            is_active=payload.is_active,
        )
    except NotFoundError as exc:
        raise _to_http_error(exc)
    return _to_service_out(service)


@router.delete("/services/{service_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_service(
    service_id: int,
    db: Session = Depends(get_db),
    _staff: AuthIdentity | None = Depends(require_staff),
):
    try:
        delete_service(db, service_id)
    except (NotFoundError, ConflictError) as exc:
        raise _to_http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


@router.get("/users", response_model=List[UserOut])
def get_users(
    staff_only: bool = Query(default=False),
    role: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    _staff: AuthIdentity | None = Depends(require_staff),
):
    if staff_only:
        rows = list_staff_users(db)
    elif role is not None:
        try:
            rows = list_users_by_role(db, role)
        except ValidationFailed as exc:
            raise _to_http_error(exc)
    else:
        rows = list_users(db)
    return [_to_user_out(db, u) for u in rows]


@router.get("/users/managers", response_model=List[UserOut])
def get_managers(
    db: Session = Depends(get_db),
    _staff: AuthIdentity | None = Depends(require_staff),
):
    return [_to_user_out(db, u) for u in list_managers_by_activity(db)]


@router.get("/users/roles", response_model=List[RoleOption])
def get_roles():
    return role_options()


@router.get("/users/{user_id}", response_model=UserOut)
def get_one_user(
    user_id: int,
    db: Session = Depends(get_db),
    _staff: AuthIdentity | None = Depends(require_staff),
):
    user = get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return _to_user_out(db, user)


@router.post("/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def add_user(
    payload: UserIn,
    db: Session = Depends(get_db),
    _staff: AuthIdentity | None = Depends(require_staff),
):
    try:
        user = create_user(
            db,
            name=payload.name,
            phone=payload.phone,
            email=payload.email,
            role=payload.role,
            password=payload.password,
            department=payload.department,
            is_active=payload.is_active,
        )
    except (ConflictError, ValidationFailed) as exc:
        raise _to_http_error(exc)
    return _to_user_out(db, user)


@router.put("/users/{user_id}", response_model=UserOut)
def edit_user(
    user_id: int,
    payload: UserIn,
    db: Session = Depends(get_db),
    _staff: AuthIdentity | None = Depends(require_staff),
):
    try:
        user = update_user(
            db,
            user_id,
            name=payload.name,
            phone=payload.phone,
            email=payload.email,
            role=payload.role,
            password=payload.password,
            department=payload.department,
            is_active=payload.is_active,
        )
    except (NotFoundError, ConflictError, ValidationFailed) as exc:
        raise _to_http_error(exc)
    return _to_user_out(db, user)


@router.delete("/users/{user_id}", response_model=UserOut)
def remove_user(
    user_id: int,
    db: Session = Depends(get_db),
    _staff: AuthIdentity | None = Depends(require_staff),
):
    try:
        user = deactivate_user(db, user_id)
    except NotFoundError as exc:
        raise _to_http_error(exc)
    return _to_user_out(db, user)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@router.get("/reports/summary", response_model=ReservationSummaryOut)
def get_summary(
    db: Session = Depends(get_db),
    _staff: AuthIdentity | None = Depends(require_staff),
):
    return ReservationSummaryOut(**reservation_summary(db))


@router.get("/reports/popular-services", response_model=List[ServiceUsageOut])
def get_popular_services(
    db: Session = Depends(get_db),
    _staff: AuthIdentity | None = Depends(require_staff),
):
    return [ServiceUsageOut(**row) for row in popular_services(db)]


@router.get("/reports/monthly", response_model=List[MonthlyCountOut])
def get_monthly(
    year: Optional[int] = Query(default=None, ge=1900, le=9999),
    db: Session = Depends(get_db),
    _staff: AuthIdentity | None = Depends(require_staff),
):
    return [MonthlyCountOut(**row) for row in monthly_confirmed(db, year or date.today().year)]
