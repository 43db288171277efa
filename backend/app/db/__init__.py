# 导出入口，给脚本和 alembic env 用；建表走 `alembic upgrade head`

from .session import engine, SessionLocal, get_db, dispose_engine
from app.db.model import *  # 确保把所有模型加载进 Base.metadata
from .base import Base
