"""工具声明与执行。"""
