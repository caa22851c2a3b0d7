"""领域层模型与协议。

包含：
- models: Message / ChatMessage / ChatRequest / ChatResult 等统一模型。
- conversation: ConversationStore 协议与历史格式化函数。
- exceptions: 业务异常类型定义。
"""
