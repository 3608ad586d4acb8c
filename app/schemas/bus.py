from pydantic import BaseModel


class PreferencesUpdate(BaseModel):
    needs_charging: bool = False
    needs_maintenance: bool = False
