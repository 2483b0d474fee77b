"""Team AI MCP: 複数の AI エージェントのためのコーディネーションエンジン。"""

__version__ = "0.1.0"
