"""buffered-spawn 入口点。

支持: python -m buffered_spawn
"""

from .app import main

if __name__ == "__main__":
    main()
