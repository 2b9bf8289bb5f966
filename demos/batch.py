import asyncio
import sys

from scraperapi import AsyncScraperClient, ClientConfig, ConfigurationError, ScraperApiError


async def main() -> int:
    urls = sys.argv[1:] or [
        input('Enter a URL to scrape: ').strip()
    ]

    try:
        config = ClientConfig.from_env(debug=True)
    except ConfigurationError as exc:
        print(f'Set SCRAPERAPI_API_KEY first ({exc})')
        return 1

    exit_code = 1
    async with AsyncScraperClient(config=config) as client:
        promises = {url: client.get_promise(url) for url in urls}
        try:
            responses = await client.resolve_promises(promises)
            for url, response in responses.items():
                print(f'{url}: {response.status_code} ({len(response.content)} bytes)')
            exit_code = 0
        except ScraperApiError as exc:
            print(f'Batch failed: {exc}')

    return exit_code


if __name__ == '__main__':
    sys.exit(
        asyncio.run(main())
    )
