#!/usr/bin/env python3
"""
Auraxis Bot - Entry Point

Telegram bot that keeps PlanetSide 2 alerts, server dashboards and
chat-title trackers up to date.
The actual implementation is in the auraxbot package.
"""

if __name__ == "__main__":
    from auraxbot import main
    main()
