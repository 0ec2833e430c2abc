from datetime import date

from sqlalchemy import extract, func, select
from sqlalchemy.orm import Session

from .models import Reservation, ReservationStatus, Service


def _count(db: Session, *conditions) -> int:
    stmt = select(func.count(Reservation.id))
    if conditions:
        stmt = stmt.where(*conditions)
    return int(db.execute(stmt).scalar_one() or 0)


def reservation_summary(db: Session, today: date | None = None) -> dict:
    day = today or date.today()
    return {
        "total": _count(db),
        "pending": _count(db, Reservation.status == ReservationStatus.PENDING.value),
        "confirmed": _count(db, Reservation.status == ReservationStatus.CONFIRMED.value),
        "rejected": _count(db, Reservation.status == ReservationStatus.REJECTED.value),
        "today": _count(
            db,
            Reservation.day == day,
            Reservation.status.in_([ReservationStatus.CONFIRMED.value, ReservationStatus.PENDING.value]),
        ),
    }


def popular_services(db: Session) -> list[dict]:
    usage = func.count(Reservation.id)
    rows = db.execute(
        select(Service.id, Service.name, usage)
        .outerjoin(Reservation, Reservation.service_id == Service.id)
        .group_by(Service.id, Service.name)
        .order_by(usage.desc(), Service.name.asc())
    ).all()
    return [
        {"service_id": int(service_id), "service_name": name, "reservations": int(count)}
        for service_id, name, count in rows
    ]


def monthly_confirmed(db: Session, year: int) -> list[dict]:
    month = extract("month", Reservation.day)
    rows = db.execute(
        select(month, func.count(Reservation.id))
        .where(
            Reservation.status == ReservationStatus.CONFIRMED.value,
            extract("year", Reservation.day) == int(year),
        )
        .group_by(month)
        .order_by(month.asc())
    ).all()
    return [{"month": int(m), "confirmed": int(count)} for m, count in rows]
