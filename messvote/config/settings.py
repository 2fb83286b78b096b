from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # 数据库配置
    database_url: str = "duckdb://./data/messvote.duckdb"

    # JWT配置
    jwt_secret_key: str = "your-secret-key"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 7  # 7天

    # API配置
    api_title: str = "Hostel Mess Menu Voting API"
    api_version: str = "1.0.0"
    api_prefix: str = "/api/v1"

    # 开发模式
    debug: bool = False
    log_level: str = "INFO"

    # 账号规则：角色在注册时由邮箱解析一次，之后随用户记录保存
    student_email_pattern: str = r"^(2[0-5])([a-z]+[0-9]{1,3}|[0-9]{1,3}[a-z]+)@psgitech\.ac\.in$"
    student_roll_min: int = 0
    student_roll_max: int = 500
    management_email_pattern: str = r"^management[a-z0-9._-]*@psgitech\.ac\.in$"
    min_password_length: int = 6

    # 登录限流
    max_failed_logins: int = 5
    login_lockout_minutes: int = 15

    # 自动定稿（每周一次）
    timezone: str = "Asia/Kolkata"
    auto_finalize_enabled: bool = True
    auto_finalize_weekday: int = 0  # 0 = 周一
    auto_finalize_interval_seconds: int = 300

    # 菜品默认图片
    image_url_template: str = "https://picsum.photos/seed/{seed}/600/400"
    default_image_hint: Optional[str] = "food meal"

    class Config:
        env_file = ".env"
        env_prefix = "MESSVOTE_"
        case_sensitive = False


# 全局设置实例
settings = Settings()
