"""Pydantic configuration models for all system settings."""

from __future__ import annotations

from pydantic import BaseModel, Field


class EcoFlowConfig(BaseModel):
    email: str = ""
    password: str = ""
    device_sn: str = ""
    api_host: str = "api.ecoflow.com"
    api_timeout_seconds: float = 15.0
    device_group: str = ""  # Outage schedule group label, reported with the status
    request_status_on_connect: bool = False
    debug: bool = False  # Log every decoded heartbeat at DEBUG

    @property
    def enabled(self) -> bool:
        return bool(self.email and self.password and self.device_sn)


class MQTTConfig(BaseModel):
    keepalive_seconds: int = 60
    connect_timeout_seconds: float = 30.0
    reconnect_delay_seconds: float = Field(5.0, gt=0.0)
    qos: int = Field(1, ge=0, le=2)


class DashboardConfig(BaseModel):
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file: str = ""


class DBConfig(BaseModel):
    path: str = "data/grid_watch.db"


class AppConfig(BaseModel):
    """Root configuration model containing all system settings."""

    ecoflow: EcoFlowConfig = EcoFlowConfig()
    mqtt: MQTTConfig = MQTTConfig()
    dashboard: DashboardConfig = DashboardConfig()
    logging: LoggingConfig = LoggingConfig()
    db: DBConfig = DBConfig()
