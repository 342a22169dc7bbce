"""领域层模型与协议。

包含：
- models: Content / Part / TurnResponse / AggregatedTurnResult 等统一模型。
- plan: 账户计划文档及其 upsert 合并逻辑。
- exceptions: 业务异常类型定义。
"""
