import pydantic_settings


class Mov2GpxConfig(pydantic_settings.BaseSettings):
    model_config = pydantic_settings.SettingsConfigDict(env_prefix="MOV2GPX_")

    # Atom-level tracing to the log
    DEBUG: bool = False

    # --- Container walk ---
    # Deepest container nesting accepted before giving up on the file
    MAX_ATOM_DEPTH: int = 32

    # --- GPS blocks ---
    # Units: bytes past each sound chunk offset
    GPS_BLOCK_DISPLACEMENT: int = 0x10000

    # --- GPX output ---
    GPX_VERSION: int = 1  # 0 for GPX 1.0, 1 for GPX 1.1
    CLEAN: bool = True  # drop points at lat/lon = 0/0
    USE_NMEA: bool = True  # take ele/hdop/sat from the $GPGGA section
    CREATOR: str = "mov2gpx"


config = Mov2GpxConfig()
