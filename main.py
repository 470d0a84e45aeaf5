#!/usr/bin/env python3
"""
TF2 World Tracker - Main Entry Point

Usage:
    python main.py                              # auto-detect tf/console.log
    python main.py --console-log PATH --debug
"""

from dotenv import load_dotenv

# Load STEAM_API_KEY etc. from .env before settings are read
load_dotenv()

from tf2_world.core.app import main

if __name__ == "__main__":
    main()
