# -*- coding: utf-8 -*-
"""
考试编辑模块测试配置
"""

from modules.exam.exam_tests.exam_conftest import *
