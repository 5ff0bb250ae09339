import asyncio

from firepersist import AppSettings, Message, SelectBy, Thread, open_store
from firepersist.config.storage import StorageSettings


async def main() -> None:
    # in-memory backend; set FIREPERSIST_STORAGE__BACKEND=firestore (plus project / emulator) for the real thing
    cfg = AppSettings(storage=StorageSettings(backend="memory"))

    # applies cfg.logging (level, json / file sinks) and builds the store
    store = open_store(cfg)
    logger = store.logger_service.for_namespace("quick_start")

    # save a thread and a few messages
    await store.save_thread(Thread(id="thread-1", resource_id="user-1", title="Hello"))
    await store.save_messages(
        [
            Message(id=f"msg-{i}", thread_id="thread-1", role="user" if i % 2 == 0 else "assistant", content=f"message {i}")
            for i in range(5)
        ]
    )

    # the two most recent messages, oldest first
    recent = await store.get_messages("thread-1", select_by=SelectBy(last=2))
    logger.info("recent messages: %s", [m.content for m in recent])

    # deleting a thread removes its messages too
    await store.delete_thread("thread-1")
    logger.info("messages left: %d", len(await store.get_messages("thread-1")))

    await store.close()


if __name__ == "__main__":
    asyncio.run(main())
