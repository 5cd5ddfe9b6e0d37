"""
Mobile App Domain Model.

An App is a registered mobile application tenant. JSON uses camelCase field
names (displayName, clientType, apiKey); Python code uses snake_case.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

APP_GROUP_LABEL = "group"
APP_GROUP = "mobileapp"
APP_NAME_LABEL = "name"


class ClientType(str, Enum):
    """Mobile client platforms."""

    ANDROID = "android"
    IOS = "ios"
    CORDOVA = "cordova"
    OTHER = "other"


# Font icon hints rendered by the console, keyed by client type
CLIENT_ICONS: dict[str, str] = {
    ClientType.ANDROID.value: "fa-android",
    ClientType.IOS.value: "fa-apple",
    ClientType.CORDOVA.value: "icon-cordova",
}


def icon_for(client_type: str) -> str | None:
    """Icon hint for a client type, or None when there is none."""
    return CLIENT_ICONS.get(client_type)


class App(BaseModel):
    """
    Mobile application tenant.

    Frozen: lifecycle steps return updated copies via model_copy().
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default="", description="Set once at creation: <name>-<epoch seconds>")
    name: str = Field(..., description="Human identifier")
    display_name: str = Field(default="", alias="displayName")
    client_type: str = Field(default=ClientType.OTHER.value, alias="clientType")
    api_key: str = Field(default="", alias="apiKey")
    description: str = Field(default="")
    labels: dict[str, str] = Field(default_factory=dict)
    metadata: dict[str, str] = Field(default_factory=dict)

    def with_metadata(self, **values: str) -> App:
        """Copy of this app with extra metadata entries."""
        return self.model_copy(update={"metadata": {**self.metadata, **values}})
