"""
测试配置文件
提供测试所需的fixtures和配置
"""

import pytest
from fastapi.testclient import TestClient

from messvote.app import create_app
from messvote.core.database import DatabaseManager, get_db
from messvote.models.menu import MenuItemCreate
from messvote.services.auth_service import AuthService
from messvote.services.menu_service import MenuService

STUDENT_EMAIL = "23cs001@psgitech.ac.in"
OTHER_STUDENT_EMAIL = "23cs002@psgitech.ac.in"
MANAGEMENT_EMAIL = "management@psgitech.ac.in"
PASSWORD = "password"


@pytest.fixture
def test_db():
    """测试数据库（内存）"""
    db_manager = DatabaseManager(":memory:")
    db_manager.init_database()

    yield db_manager

    # 清理
    db_manager.close()


@pytest.fixture
def auth_service(test_db):
    return AuthService(test_db)


@pytest.fixture
def student(auth_service):
    """示例学生"""
    return auth_service.sign_up(STUDENT_EMAIL, PASSWORD)


@pytest.fixture
def other_student(auth_service):
    """另一名学生"""
    return auth_service.sign_up(OTHER_STUDENT_EMAIL, PASSWORD)


@pytest.fixture
def manager(auth_service):
    """管理员"""
    return auth_service.sign_up(MANAGEMENT_EMAIL, PASSWORD, "Management")


@pytest.fixture
def menu_service(test_db):
    return MenuService(test_db)


@pytest.fixture
def make_item(menu_service, manager):
    """按需创建菜品"""
    def _make(title="Idli", category="breakfast", day="monday", dietary_info="veg", ingredients=None):
        return menu_service.propose_item(manager, MenuItemCreate(
            title=title,
            category=category,
            day=day,
            dietary_info=dietary_info,
            ingredients=ingredients or [],
        ))
    return _make


@pytest.fixture
def sample_items(make_item):
    """示例菜品：周一早餐两道、周一午餐两道、周二晚餐一道"""
    return {
        "idli": make_item("Idli", "breakfast", "monday", "veg", ["rice", "urad dal"]),
        "dosa": make_item("Masala Dosa", "breakfast", "monday", "veg", "rice batter, potato"),
        "biryani": make_item("Chicken Biryani", "lunch", "monday", "non-veg"),
        "meals": make_item("South Indian Meals", "lunch", "monday", "veg"),
        "parotta": make_item("Parotta", "dinner", "tuesday", "veg"),
    }


@pytest.fixture
def set_votes(test_db):
    """直接设置票数，用于构造统计场景"""
    def _set(item_id: int, votes: int):
        with test_db.transaction() as conn:
            conn.execute("UPDATE menu_items SET votes = ? WHERE item_id = ?", [votes, item_id])
    return _set


@pytest.fixture
def app_instance(test_db):
    """测试应用"""
    app = create_app()
    app.dependency_overrides[get_db] = lambda: test_db

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(app_instance):
    """测试客户端"""
    return TestClient(app_instance)


@pytest.fixture
def auth_headers(auth_service, student):
    """学生认证请求头"""
    return {"Authorization": f"Bearer {auth_service.issue_token(student)}"}


@pytest.fixture
def other_headers(auth_service, other_student):
    return {"Authorization": f"Bearer {auth_service.issue_token(other_student)}"}


@pytest.fixture
def admin_headers(auth_service, manager):
    """管理员认证请求头"""
    return {"Authorization": f"Bearer {auth_service.issue_token(manager)}"}
