#!/usr/bin/env python3
"""
Course Checkout Service - Entry Point
Точка входа для запуска HTTP сервиса оплаты
"""

from checkout.main import main
import asyncio

if __name__ == "__main__":
    asyncio.run(main())
