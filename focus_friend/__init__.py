"""
FocusFriend - 学生向け集中・気分・ごほうび管理
"""
__version__ = "0.3.0"
