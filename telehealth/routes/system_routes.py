from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from telehealth.auth.dependencies import require_role
from telehealth.core.system_settings import (
    list_configurations,
    load_scheduling_settings,
    upsert_configuration,
)
from telehealth.database import get_db
from telehealth.models.user import ROLE_ADMIN, User
from telehealth.routes.common import scheduling_errors

router = APIRouter(tags=['system'])


class ConfigurationResponse(BaseModel):
    config_key: str
    config_value: str
    data_type: str | None = None
    is_active: bool
    description: str | None = None

    class Config:
        from_attributes = True


class UpdateConfigurationRequest(BaseModel):
    config_value: str
    is_active: bool = True
    description: str | None = None

    @field_validator('config_value')
    @classmethod
    def validate_config_value(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Configuration value is required.')
        return normalized


class SchedulingSettingsResponse(BaseModel):
    timezone: str
    confirmation_hours_before: int
    start_hour: str
    end_hour: str


@router.get('/scheduling-settings', response_model=SchedulingSettingsResponse)
def get_scheduling_settings(db: Session = Depends(get_db)):
    with scheduling_errors():
        settings = load_scheduling_settings(db)

    return SchedulingSettingsResponse(
        timezone=settings.timezone,
        confirmation_hours_before=settings.confirmation_hours_before,
        start_hour=settings.start_hour,
        end_hour=settings.end_hour,
    )


@router.get('/configurations', response_model=list[ConfigurationResponse])
def get_configurations(
    current_user: User = Depends(require_role(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    with scheduling_errors():
        return list_configurations(db)


@router.put('/configurations/{config_key}', response_model=ConfigurationResponse)
def update_configuration(
    config_key: str,
    data: UpdateConfigurationRequest,
    current_user: User = Depends(require_role(ROLE_ADMIN)),
    db: Session = Depends(get_db),
):
    with scheduling_errors():
        return upsert_configuration(
            db,
            config_key,
            data.config_value,
            is_active=data.is_active,
            description=data.description,
        )
