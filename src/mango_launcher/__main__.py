"""mango-launcher 入口点。

支持: python -m mango_launcher
"""

from .app import main

if __name__ == "__main__":
    main()
