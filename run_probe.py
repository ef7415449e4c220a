#!/usr/bin/env python3
"""
PVC Disk Usage Probe
磁盘用量探针（sidecar），在 PROBE_PORT 上提供 GET /disk

Usage:
  PROBE_PVCS=data-0,logs-0 python run_probe.py
"""

import uvicorn
from dotenv import load_dotenv

# 加载环境变量
load_dotenv()

from pvc_autoscaler.config import get_settings
from pvc_autoscaler.core.logging import setup_logging

# 使用应用自身的统一日志配置，避免 uvicorn 默认 log_config 覆盖
setup_logging()

from pvc_autoscaler.probe import create_probe_app

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        create_probe_app(settings),
        host=settings.probe_host,
        port=settings.probe_port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )
