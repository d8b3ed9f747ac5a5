"""同步引擎公共部分 - 运行状态、取消、历史记录."""

import asyncio
import dataclasses
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, ClassVar, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tailburrow.core.errors import (
    AlreadyRunningError,
    AuthenticationError,
    InvalidOptionsError,
    LibraryNotConfiguredError,
    TailburrowError,
)
from tailburrow.models.database import async_session_maker
from tailburrow.models.sync import SyncRunRecord

logger = logging.getLogger(__name__)


class RunState:
    """运行状态枚举."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class RunStatus:
    """一次运行的状态快照；计数器只在新运行开始时清零."""

    state: str = RunState.IDLE
    running: bool = False
    cancelled: bool = False
    max_new_downloads: int | None = None
    last_error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def counters(self) -> dict[str, int]:
        """子类定义的整数计数器."""
        base = {f.name for f in dataclasses.fields(RunStatus)}
        return {
            f.name: getattr(self, f.name)
            for f in dataclasses.fields(self)
            if f.name not in base and isinstance(getattr(self, f.name), int)
        }

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        for key in ("started_at", "finished_at"):
            value = data[key]
            data[key] = value.isoformat() if value else None
        return data


class Closable(Protocol):
    async def close(self) -> None: ...


class BaseSyncEngine(ABC):
    """
    单来源同步引擎.

    状态只由运行自身的任务修改；status() 返回副本，可以随时并发轮询。
    cancel() 只设置标志，在下一个安全点（帖子之间、页面之间）生效。
    """

    source: ClassVar[str]
    status_cls: ClassVar[type[RunStatus]] = RunStatus

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        resources: list[Closable] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._resources = resources or []
        self._status = self.status_cls()
        self._cancel_requested = False
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        """是否正在运行."""
        return self._status.running

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or async_session_maker()

    def status(self) -> RunStatus:
        """当前状态快照."""
        return dataclasses.replace(self._status)

    def _begin(self, max_new_downloads: int | None) -> None:
        if self._status.running:
            msg = f"{self.source} 同步已在运行"
            raise AlreadyRunningError(msg)
        if max_new_downloads is not None and max_new_downloads < 1:
            msg = "max_new_downloads 必须是正整数"
            raise InvalidOptionsError(msg)

        self._cancel_requested = False
        self._status = self.status_cls(
            state=RunState.RUNNING,
            running=True,
            max_new_downloads=max_new_downloads,
            started_at=datetime.now(UTC),
        )

    def start(self, max_new_downloads: int | None = None) -> RunStatus:
        """在后台任务中启动一次运行."""
        self._begin(max_new_downloads)
        self._task = asyncio.create_task(self._execute())
        return self.status()

    async def run(self, max_new_downloads: int | None = None) -> RunStatus:
        """在当前任务中完整执行一次运行."""
        self._begin(max_new_downloads)
        await self._execute()
        return self.status()

    async def wait(self) -> RunStatus:
        """等待后台运行结束."""
        if self._task is not None:
            await self._task
        return self.status()

    def cancel(self) -> bool:
        """请求停止；没有运行时不做任何事."""
        if not self._status.running:
            return False
        self._cancel_requested = True
        self._status.cancelled = True
        logger.info(f"{self.source} 同步收到取消请求")
        return True

    @abstractmethod
    async def _run_loop(self) -> None:
        """执行同步主循环."""
        ...

    def _on_finish(self, state: str) -> None:
        """运行结束时的钩子."""
        return None

    async def _execute(self) -> None:
        logger.info(f"{self.source} 同步启动")
        record_id = await self._create_record()
        state = RunState.COMPLETED

        try:
            await self._run_loop()
            if self._cancel_requested:
                state = RunState.CANCELLED
        except asyncio.CancelledError:
            state = RunState.CANCELLED
            raise
        except AuthenticationError as e:
            state = RunState.FAILED
            self._status.last_error = str(e)
            logger.warning(f"{self.source} 认证失败: {e}")
        except TailburrowError as e:
            state = RunState.FAILED
            self._status.last_error = str(e)
            logger.warning(f"{self.source} 同步失败: {e}")
        except Exception as e:
            state = RunState.FAILED
            self._status.last_error = f"{type(e).__name__}: {e}"
            logger.exception(f"{self.source} 同步异常")
        finally:
            await self.close_resources()
            self._on_finish(state)
            self._status.state = state
            self._status.finished_at = datetime.now(UTC)
            self._status.running = False
            await self._finish_record(record_id)
            logger.info(f"{self.source} 同步结束: {state} {self._status.counters()}")

    async def close_resources(self) -> None:
        for resource in self._resources:
            try:
                await resource.close()
            except Exception:
                logger.exception("关闭连接失败")

    async def _create_record(self) -> int | None:
        """写入一条 running 状态的历史记录."""
        try:
            async with self.session_factory()() as session:
                record = SyncRunRecord(
                    source=self.source,
                    status=RunState.RUNNING,
                    started_at=datetime.now(UTC),
                )
                session.add(record)
                await session.commit()
                return record.id
        except (SQLAlchemyError, LibraryNotConfiguredError):
            logger.exception("写入同步历史失败")
            return None

    async def _finish_record(self, record_id: int | None) -> None:
        if record_id is None:
            return
        try:
            async with self.session_factory()() as session:
                record = await session.get(SyncRunRecord, record_id)
                if record is None:
                    return
                record.status = self._status.state
                record.counters_json = json.dumps(self._status.counters())
                record.error_message = self._status.last_error
                record.completed_at = datetime.now(UTC)
                await session.commit()
        except SQLAlchemyError:
            logger.exception("更新同步历史失败")
