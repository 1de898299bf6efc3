from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "Classroom Scheduler"
    API_V1_STR: str = "/api"
    
    # Server
    PORT: int = 8000
    ENVIRONMENT: str = "development"
    
    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    TIMETABLE_TABLE: str = "timetable"
    CLASS_STATUS_TABLE: str = "class_status"
    CLASSROOMS_TABLE: str = "classrooms"
    
    # Scheduling (IST is UTC+5:30)
    REFERENCE_UTC_OFFSET_MINUTES: int = 330
    UPCOMING_WINDOW_MINUTES: int = 15
    
    # Realtime refresh
    REALTIME_ENABLED: bool = True
    DISPLAY_REFRESH_SECONDS: int = 300
    
    # Logging
    LOG_LEVEL: str = "INFO"
    ERROR_LOG_PATH: str = "logs/errors.log"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

settings = Settings()
