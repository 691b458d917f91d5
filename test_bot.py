#!/usr/bin/env python3
"""
Auraxis Bot Test Suite
Smoke tests for configuration, imports and session handling
"""

import sys
import asyncio
import logging
import traceback
from pathlib import Path
import pytest

# Add current directory to path for bot imports
sys.path.insert(0, str(Path(__file__).parent))

from auraxbot import Config, SERVICE_ID, make_session, fetch, build_headers
from auraxbot.config import (
    CENSUS_API_URL,
    FISU_API_URL,
    PS2ALERTS_API_URL,
    ALERT_POLL_SECS,
    DASHBOARD_POLL_SECS,
    TRACKER_POLL_SECS,
    FETCH_RETRIES,
)


def test_configuration_values():
    """Test that configuration values are sane"""
    print("🔧 Testing configuration...")

    for name, url in (("Census", CENSUS_API_URL), ("fisu", FISU_API_URL), ("PS2Alerts", PS2ALERTS_API_URL)):
        assert url.startswith("http"), f"{name} URL not configured"
        assert not url.endswith("/"), f"{name} URL must not end with a slash"
        print(f"  ✅ {name} URL: {url}")

    assert SERVICE_ID, "SERVICE_ID is empty"
    assert FETCH_RETRIES >= 0, "FETCH_RETRIES must not be negative"
    for name, secs in (("alerts", ALERT_POLL_SECS), ("dashboards", DASHBOARD_POLL_SECS), ("trackers", TRACKER_POLL_SECS)):
        assert secs > 0, f"{name} interval must be positive"
        print(f"  ✅ {name} every {secs}s")

    print("✅ Configuration looks good")


def test_validate_config_requires_token(monkeypatch):
    """Test that a missing bot token is reported"""
    print("🤖 Testing bot token validation...")

    monkeypatch.setattr(Config, "BOT_TOKEN", None)
    with pytest.raises(ValueError):
        Config.validate_config()

    monkeypatch.setattr(Config, "BOT_TOKEN", "123:abc")
    Config.validate_config()
    print("✅ Token validation works")


def test_imports():
    """Test that all required modules can be imported"""
    print("📦 Testing module imports...")

    required_modules = [
        'aiohttp',
        'cachetools',
        'dotenv',
        'telegram',
        'telegram.ext',
        'sqlite3',
    ]

    failed_imports = []

    for module in required_modules:
        try:
            __import__(module)
            print(f"  ✅ {module}")
        except ImportError:
            print(f"  ❌ {module}")
            failed_imports.append(module)

    assert not failed_imports, f"Missing dependencies: {', '.join(failed_imports)}"
    print("✅ All required modules imported successfully")


def test_bot_configuration():
    """Test that the HTTP helpers are wired up"""
    print("⚙️ Testing bot configuration...")

    assert callable(make_session), "make_session function not available"
    assert callable(fetch), "fetch function not available"
    assert build_headers()["accept"] == "application/json"

    print("✅ Bot configuration looks good")


@pytest.mark.asyncio
async def test_session_creation():
    """Test that we can create and close HTTP sessions properly"""
    print("🔗 Testing session management...")

    session = make_session()
    assert session is not None, "Failed to create session"
    print("  ✅ Session created successfully")

    await session.close()
    print("  ✅ Session closed successfully")


@pytest.mark.asyncio
async def test_health_check_reports_maintenance(monkeypatch, caplog):
    """Test that a Census maintenance window is recognised at startup"""
    print("🏥 Testing startup health check...")

    from auraxbot import api, http, startup_health_check
    from conftest import FakeSession

    async def unavailable(session):
        raise http.UpstreamError("service_unavailable", "Census API currently unavailable")

    monkeypatch.setattr(http, "make_session", lambda: FakeSession({}))
    monkeypatch.setattr(api, "get_metagame_events", unavailable)

    with caplog.at_level(logging.ERROR):
        assert await startup_health_check() is False
    assert "down for maintenance" in caplog.text
    print("✅ Maintenance window reported")


# Run with: pytest -v


async def run_all_tests():
    """Run the smoke tests without pytest and return overall status"""
    print("🧪 Starting Auraxis Bot Test Suite")
    print("=" * 50)

    tests = [
        ("Configuration Test", test_configuration_values, False),
        ("Import Test", test_imports, False),
        ("Bot Configuration Test", test_bot_configuration, False),
        ("Session Management Test", test_session_creation, True),
    ]

    results = []

    for test_name, test_func, is_async in tests:
        print(f"\n🔍 Running {test_name}...")
        try:
            if is_async:
                await test_func()
            else:
                test_func()
            results.append((test_name, True))
        except Exception as e:
            print(f"❌ {test_name} failed with exception: {e}")
            print("Traceback:")
            traceback.print_exc()
            results.append((test_name, False))

    # Summary
    print("\n" + "=" * 50)
    print("📊 Test Results Summary:")

    passed = sum(1 for _, result in results if result)
    for test_name, result in results:
        status = "✅ PASS" if result else "❌ FAIL"
        print(f"  {status} - {test_name}")

    print(f"\nResults: {passed}/{len(results)} tests passed")

    if passed == len(results):
        print("🎉 All tests passed! Bot is ready to run.")
        return True
    print("⚠️ Some tests failed. Please check the issues above.")
    return False


if __name__ == "__main__":
    try:
        success = asyncio.run(run_all_tests())
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        print("\n⏹️ Tests interrupted by user")
