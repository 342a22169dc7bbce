"""对话会话与多轮工具调用引擎。"""
