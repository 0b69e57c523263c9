from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from app import currencies
from app.db import get_session


class CurrencyOut(BaseModel):
    ticker: str
    name: str

    model_config = ConfigDict(from_attributes=True)


router = APIRouter(prefix="/currencies", tags=["currencies"])


@router.get("/", response_model=List[CurrencyOut])
def list_currencies(db: Session = Depends(get_session)) -> List[CurrencyOut]:
    return [CurrencyOut.model_validate(c) for c in currencies.list_all(db)]


@router.get("/reference", response_model=List[CurrencyOut])
def list_reference_currencies(db: Session = Depends(get_session)) -> List[CurrencyOut]:
    """Currencies a portfolio can be valued in."""
    return [CurrencyOut.model_validate(c) for c in currencies.reference_currency_list(db)]
