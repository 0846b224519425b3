"""领域层模型与协议。

包含：
- models: Bot / Message / ChatStatus 以及发给模型服务的请求模型。
- bots: BotStore 与 KeyValueStore 存储协议。
- exceptions: 业务异常类型定义。
"""
