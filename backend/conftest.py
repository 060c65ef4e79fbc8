"""
pytest 测试配置入口
这个文件是 pytest 自动识别的入口点，用于在任何测试模块加载之前设置环境变量，
并从 tests/test_conftest.py 导入所有 fixtures。
"""

import os

# 在导入任何其他模块之前设置测试环境变量
os.environ.setdefault("LMS_API_BASE_URL", "http://lms.test/api/v1")
os.environ.setdefault("DISPLAY_UTC_OFFSET_HOURS", "0")
os.environ.setdefault("LOG_LEVEL", "WARNING")

# 从 test_conftest.py 导入所有 fixtures
from tests.test_conftest import *
