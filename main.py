# main.py
import sys
import os

# 将项目根目录加入 sys.path，直接 `python main.py` 运行时也能导入 autocheckin 包
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from autocheckin.app_orchestrator import AppOrchestrator

def run_application():
    """
    创建并运行应用编排器。

    用法: python main.py [once|serve|status] [--debug-console] [--silent]
    """
    orchestrator = AppOrchestrator()
    exit_code = orchestrator.run()
    sys.exit(exit_code)

if __name__ == "__main__":
    run_application()
