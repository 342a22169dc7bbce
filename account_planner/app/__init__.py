"""应用状态控制器。"""
