"""
认证服务
处理注册、登录、登出、令牌签发和个人资料维护

登录流程：
- 学生：校验学号邮箱格式 -> 尝试登录 -> 账号不存在则自动注册
- 管理员：只能登录，不能通过该流程自助注册
"""

import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from ..config.settings import settings
from ..core.audit import write_audit_log
from ..core.database import DatabaseManager, db_manager
from ..core.exceptions import (
    AuthenticationError,
    EmailInUseError,
    PermissionDeniedError,
    TooManyRequestsError,
    UserNotFoundError,
    ValidationError,
    WeakPasswordError,
    WrongCredentialError,
)
from ..core.security import security_manager
from ..models.user import Principal, Role, User

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def resolve_role(email: str) -> Optional[Role]:
    """由邮箱解析角色，两种格式都不匹配时返回 None"""
    email = normalize_email(email)
    if re.match(settings.management_email_pattern, email, re.IGNORECASE):
        return Role.MANAGEMENT
    if re.match(settings.student_email_pattern, email, re.IGNORECASE):
        return Role.STUDENT
    return None


def validate_student_email(email: str) -> int:
    """校验学生邮箱格式并返回学号"""
    email = normalize_email(email)
    if not re.match(settings.student_email_pattern, email, re.IGNORECASE):
        raise ValidationError(
            "Please use your official student email, e.g. '23cs001@psgitech.ac.in'",
            error_code="INVALID_EMAIL_FORMAT"
        )
    digits = re.findall(r"[0-9]+", email.split("@")[0][2:])
    roll_number = int(digits[-1]) if digits else -1
    if not settings.student_roll_min <= roll_number <= settings.student_roll_max:
        raise ValidationError(
            f"The roll number in your email must be between "
            f"{settings.student_roll_min} and {settings.student_roll_max}",
            error_code="INVALID_ROLL_NUMBER"
        )
    return roll_number


def derive_display_name(email: str) -> str:
    """由邮箱本地部分生成显示名称"""
    local = normalize_email(email).split("@")[0]
    name = re.sub(r"[0-9._]+", " ", local)
    name = " ".join(part.capitalize() for part in name.split())
    return name or local


class AuthService:
    """认证服务"""

    def __init__(self, db: DatabaseManager = None):
        self.db = db or db_manager

    def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> Principal:
        """注册新账号，角色由邮箱一次性确定"""
        email = normalize_email(email)
        role = resolve_role(email)
        if role is None:
            raise ValidationError("Email is not a recognised student or management address",
                                  error_code="INVALID_EMAIL_FORMAT")
        if not password or len(password) < settings.min_password_length:
            raise WeakPasswordError(
                f"Password should be at least {settings.min_password_length} characters"
            )

        display_name = (display_name or "").strip() or derive_display_name(email)
        user_id = uuid.uuid4().hex
        now = datetime.now()

        with self.db.transaction() as conn:
            existing = conn.execute("SELECT id FROM users WHERE email = ?", [email]).fetchone()
            if existing:
                raise EmailInUseError("An account with this email already exists")

            conn.execute(
                """
                INSERT INTO users (id, email, display_name, role, password_hash, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [user_id, email, display_name, role.value, generate_password_hash(password), now, now]
            )
            write_audit_log(conn, "user_sign_up", user_id, user_id, {"email": email, "role": role.value})

        logger.info("Registered %s account %s", role.value, email)
        return Principal(id=user_id, email=email, display_name=display_name, role=role)

    def sign_in(self, email: str, password: str) -> Principal:
        """邮箱密码登录"""
        email = normalize_email(email)
        now = datetime.now()

        with self.db.transaction() as conn:
            cursor = conn.execute(
                """
                SELECT id, email, display_name, role, password_hash, failed_logins, last_failed_at
                FROM users WHERE email = ?
                """,
                [email]
            )
            row = cursor.fetchone()
            if row is None:
                raise UserNotFoundError("No account found for this email")

            user_id, email, display_name, role, password_hash, failed_logins, last_failed_at = row
            window = timedelta(minutes=settings.login_lockout_minutes)
            recent_failure = last_failed_at is not None and now - last_failed_at < window
            if not recent_failure:
                failed_logins = 0

            if failed_logins >= settings.max_failed_logins:
                raise TooManyRequestsError(
                    "Access to this account has been temporarily disabled due to many "
                    "failed login attempts, try again later"
                )

            if not check_password_hash(password_hash, password or ""):
                failed = failed_logins + 1
                conn.execute(
                    "UPDATE users SET failed_logins = ?, last_failed_at = ? WHERE id = ?",
                    [failed, now, user_id]
                )
                logger.info("Failed login for %s (%d)", email, failed)
                wrong_password = WrongCredentialError("Incorrect email or password")
            else:
                wrong_password = None
                if failed_logins or last_failed_at is not None:
                    conn.execute(
                        "UPDATE users SET failed_logins = 0, last_failed_at = NULL WHERE id = ?",
                        [user_id]
                    )

        # 失败计数需要提交，因此在事务外抛出
        if wrong_password is not None:
            raise wrong_password

        return Principal(id=user_id, email=email, display_name=display_name, role=role)

    def student_login(self, email: str, password: str) -> Principal:
        """学生登录：格式校验后登录，账号不存在时自动注册"""
        validate_student_email(email)
        try:
            principal = self.sign_in(email, password)
        except UserNotFoundError:
            principal = self.sign_up(email, password)
        if not principal.is_student:
            raise PermissionDeniedError("This account is not a student account")
        return principal

    def management_login(self, email: str, password: str) -> Principal:
        """管理员登录，账号不存在和密码错误统一提示"""
        try:
            principal = self.sign_in(email, password)
        except UserNotFoundError:
            raise WrongCredentialError("Incorrect email or password") from None
        if not principal.is_management:
            raise PermissionDeniedError("This account does not have management access")
        return principal

    def issue_token(self, principal: Principal) -> str:
        """签发访问令牌"""
        return security_manager.create_jwt_token(principal)

    def current_principal(self, token: Optional[str]) -> Optional[Principal]:
        """令牌对应的当前用户，无效令牌返回 None"""
        if not token:
            return None
        try:
            return security_manager.resolve_principal(self.db, token)
        except AuthenticationError:
            return None

    def sign_out(self, token: str) -> None:
        """登出：吊销令牌"""
        payload = security_manager.decode_jwt_token(token)
        with self.db.transaction() as conn:
            conn.execute(
                "INSERT INTO revoked_tokens (jti, user_id, revoked_at) VALUES (?, ?, ?) ON CONFLICT DO NOTHING",
                [payload["jti"], payload.get("sub"), datetime.now()]
            )
            write_audit_log(conn, "user_sign_out", payload.get("sub"), payload.get("sub"))

    def get_user(self, user_id: str) -> User:
        """获取用户资料"""
        row = self.db.execute_one(
            "SELECT id, email, display_name, role, created_at, updated_at FROM users WHERE id = ?",
            [user_id]
        )
        if not row:
            raise UserNotFoundError("User not found")
        return User(**row)

    def update_profile(self, principal: Principal, display_name: str) -> User:
        """修改显示名称"""
        display_name = (display_name or "").strip()
        if not display_name:
            raise ValidationError("Display name cannot be empty")
        if len(display_name) > 100:
            raise ValidationError("Display name is too long")

        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE users SET display_name = ?, updated_at = ? WHERE id = ?",
                [display_name, datetime.now(), principal.id]
            )
            write_audit_log(conn, "user_update_profile", principal.id, principal.id,
                            {"display_name": display_name})
        return self.get_user(principal.id)
