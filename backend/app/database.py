"""
数据库配置 - 持久化层
服务层不持有全局连接：每个操作显式接收 Session，事务边界由 transaction() 划定
"""
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import settings

Base = declarative_base()

# transaction() 打开连接时带上的执行选项
WRITE_INTENT = "hotelops_write_intent"


def _enable_sqlite_write_locking(engine: Engine) -> None:
    """
    SQLite 下由 transaction() 开启的写事务以 BEGIN IMMEDIATE 开始，
    使"检查后写入"的单元在数据库级串行化；只读查询用普通 BEGIN，不占写锁
    文件库启用 WAL，读事务不阻塞写事务
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # 交由下面的 begin 事件显式开启事务
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get(WRITE_INTENT):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def create_db_engine(url: Optional[str] = None, **kwargs) -> Engine:
    """创建数据库引擎"""
    url = url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    kwargs.setdefault("echo", settings.DATABASE_ECHO)

    engine = create_engine(url, **kwargs)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_write_locking(engine)
    return engine


engine = create_db_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    """依赖注入：获取数据库会话（每个请求一个）"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    一个业务变更 = 一个事务
    先结束会话里遗留的只读事务，再以写意图开启新事务；
    正常退出时提交，任何异常都回滚后继续抛出
    """
    if db.in_transaction():
        db.commit()
    db.connection(execution_options={WRITE_INTENT: True})
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def init_db(bind: Optional[Engine] = None) -> None:
    """初始化数据库表"""
    from app.models import ontology  # noqa
    Base.metadata.create_all(bind=bind or engine)
