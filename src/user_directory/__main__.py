"""
CLI entry point for inspecting a users database
"""

if __name__ == "__main__":
    from . import main

    main()
