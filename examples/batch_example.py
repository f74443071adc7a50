"""Example: Click a link on several pages in parallel with steadyhand."""

import asyncio

from steadyhand import (
    BatchConfig,
    BrowserSession,
    Config,
    ElementLocator,
    ParallelBatchProcessor,
    PlaywrightDriver,
    RecognitionTarget,
    ReliableInteractionEngine,
    TesseractRecognizer,
    WorkItem,
)


URLS = [
    "https://example.com",
    "https://example.org",
    "https://example.net",
]


async def main() -> None:
    """Run the example batch."""
    config = Config(headless=True)
    recognizer = TesseractRecognizer()

    async with BrowserSession(config.browser) as session:

        async def open_more_information(item: WorkItem) -> str:
            page = await session.new_page()
            try:
                await session.navigate(item.payload, page=page)
                engine = ReliableInteractionEngine(
                    PlaywrightDriver(page), recognizer=recognizer, config=config.engine
                )
                outcome = await engine.click(
                    ElementLocator(text="More information..."),
                    "More information link",
                    fallback=RecognitionTarget(text="More information"),
                )
                return outcome.strategy.value
            finally:
                await page.close()

        processor = ParallelBatchProcessor(BatchConfig(max_concurrency=2, batch_size=2))
        items = [WorkItem(id=str(i), payload=url) for i, url in enumerate(URLS, start=1)]
        result = await processor.process_batch(items, open_more_information)

    for work in result.results:
        print(f"{work.item.payload}: {work.status.value} ({work.details or work.error})")
    print(f"Success rate: {result.success_rate * 100:.0f}%")


if __name__ == "__main__":
    asyncio.run(main())
