import json
import sys

from scraperapi import ClientConfig, ConfigurationError, ScraperApiError, ScraperClient


def account_str(info: dict) -> str:
    sep = '-------------------------'
    result = f'\n{sep}\n'
    for key, value in info.items():
        result += f'{key}: {value}\n'
    return result + sep


def main() -> int:
    try:
        config = ClientConfig.from_env(debug=True)
    except ConfigurationError as exc:
        print(f'Set SCRAPERAPI_API_KEY first ({exc})')
        return 1

    exit_code = 1
    with ScraperClient(config=config) as client:
        try:
            info = json.loads(client.account_info())
            print(account_str(info))
            exit_code = 0
        except ScraperApiError as exc:
            print(f'Error fetching account info, check your network connection {exc}')

    return exit_code


if __name__ == '__main__':
    sys.exit(main())
