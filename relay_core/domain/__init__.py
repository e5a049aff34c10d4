"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / GenerationOptions / GenerationResult 等模型。
- chat: 聊天设置、消息上下文、处理结果记录及其仓库协议。
- exceptions: 业务异常类型定义。
"""
