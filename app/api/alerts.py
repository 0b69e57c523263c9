from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app import alerts
from app.api.deps import current_user
from app.db import get_session
from app.metrics import ALERT_CHANGES
from app.models import User


class AlertIn(BaseModel):
    from_ticker: str = Field(..., min_length=2, max_length=20)
    to_ticker: str = Field(..., min_length=2, max_length=20)
    value: Decimal = Field(..., gt=0)
    above: bool = True


class AlertOut(BaseModel):
    alert_id: str
    from_ticker: str
    from_name: str
    to_ticker: str
    to_name: str
    above: bool
    value: Decimal
    created_time: datetime
    sent: bool

    model_config = ConfigDict(from_attributes=True)


class AlertRecord(BaseModel):
    alert_id: str
    from_ticker: str
    to_ticker: str
    above: bool
    value: Decimal
    created_time: datetime
    sent: bool

    model_config = ConfigDict(from_attributes=True)


router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("/", response_model=List[AlertOut])
def get_alerts(
    user: User = Depends(current_user),
    db: Session = Depends(get_session),
) -> List[AlertOut]:
    return [AlertOut.model_validate(a) for a in alerts.list_alerts(db, user.id)]


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=AlertRecord)
def create_alert(
    payload: AlertIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_session),
) -> AlertRecord:
    row = alerts.create_alert(
        db, user.id, payload.from_ticker, payload.to_ticker, payload.value, payload.above
    )
    ALERT_CHANGES.labels(action="created").inc()
    return AlertRecord.model_validate(row)


@router.get("/{alert_id}", response_model=AlertRecord)
def get_alert(
    alert_id: str,
    user: User = Depends(current_user),
    db: Session = Depends(get_session),
) -> AlertRecord:
    return AlertRecord.model_validate(alerts.get_alert(db, user.id, alert_id))


@router.put("/{alert_id}", response_model=AlertRecord)
def update_alert(
    alert_id: str,
    payload: AlertIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_session),
) -> AlertRecord:
    row = alerts.update_alert(
        db,
        user.id,
        alert_id,
        payload.from_ticker,
        payload.to_ticker,
        payload.value,
        payload.above,
    )
    ALERT_CHANGES.labels(action="updated").inc()
    return AlertRecord.model_validate(row)


@router.delete("/{alert_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_alert(
    alert_id: str,
    user: User = Depends(current_user),
    db: Session = Depends(get_session),
) -> Response:
    alerts.delete_alert(db, user.id, alert_id)
    ALERT_CHANGES.labels(action="deleted").inc()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
