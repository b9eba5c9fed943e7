#!/usr/bin/env python3
"""
Narrative Combat MCP Server 启动脚本

使用方法：
    # 启动 stdio 传输（用于本地 MCP 客户端）
    python run_combat_server.py

    # 启动 HTTP 传输（用于远程调用）
    python run_combat_server.py --transport streamable-http --port 9102
"""

import logging
import os
import sys

# 确保可以导入 narrative_combat 模块
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

# 加载环境变量
from dotenv import load_dotenv
load_dotenv()


def main():
    import argparse

    parser = argparse.ArgumentParser(
        description="Narrative Combat MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  # stdio 模式（默认）
  python run_combat_server.py

  # HTTP 模式
  python run_combat_server.py --transport streamable-http --port 9102

  # 使用另一套战斗数据
  COMBAT_CONTENT_DIR=/path/to/content python run_combat_server.py
"""
    )

    parser.add_argument(
        "--transport",
        choices=["stdio", "streamable-http", "sse"],
        default="stdio",
        help="传输方式 (默认: stdio)"
    )

    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="HTTP/SSE 传输的地址 (默认: 127.0.0.1)"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=9102,
        help="HTTP/SSE 传输的端口 (默认: 9102)"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="启用调试日志"
    )

    args = parser.parse_args()

    from narrative_combat.config import settings, validate_config

    # stdio 模式下 stdout 用于协议通信，日志写到 stderr
    logging.basicConfig(
        level=logging.DEBUG if args.debug else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not validate_config():
        print("警告: 战斗数据不完整，start_encounter 可能失败", file=sys.stderr)

    print("=" * 60, file=sys.stderr)
    print("Narrative Combat MCP Server", file=sys.stderr)
    print("=" * 60, file=sys.stderr)
    print(f"传输方式: {args.transport}", file=sys.stderr)
    if args.transport != "stdio":
        print(f"地址: {args.host}:{args.port}", file=sys.stderr)
    print(f"战斗数据: {settings.combat_content_dir}", file=sys.stderr)
    print("=" * 60, file=sys.stderr)

    from narrative_combat.combat.combat_mcp_server import combat_mcp, run_combat_mcp_server

    combat_mcp.settings.host = args.host
    combat_mcp.settings.port = args.port
    run_combat_mcp_server(args.transport)


if __name__ == "__main__":
    main()
