"""
Apply Queue - Auto-Apply Orchestrator

投递队列 + 自动投递驱动包初始化文件。
"""

from __future__ import annotations

from dotenv import find_dotenv, load_dotenv

# 包导入时加载一次项目 .env（OPENAI_API_KEY / BROWSERBASE_* / CRON_SECRET 等）
load_dotenv(find_dotenv(usecwd=True), override=False)
