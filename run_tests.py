#!/usr/bin/env python3
"""
Test runner script for Notes Buddy.
Provides convenient test execution with different options.
"""
import subprocess
import sys
import os
from pathlib import Path


def run_command(cmd, description):
    """Run a command and print the result."""
    print(f"\n{'='*60}")
    print(f"🔧 {description}")
    print(f"{'='*60}")
    print(f"Command: {' '.join(cmd)}")
    print()

    result = subprocess.run(cmd, capture_output=False, text=True)

    if result.returncode == 0:
        print(f"\n✅ {description} - PASSED")
    else:
        print(f"\n❌ {description} - FAILED (exit code: {result.returncode})")

    return result.returncode == 0


def pytest_command(*args):
    return [sys.executable, "-m", "pytest", *args]


def main():
    """Main test runner."""
    project_root = Path(__file__).parent
    os.chdir(project_root)

    print("Notes Buddy - Test Runner")
    print("="*60)

    if len(sys.argv) < 2:
        print("""
Usage: python run_tests.py <option>

Options:
  unit        Run unit tests only (mocked model and store)
  integration Run integration tests (real ChromaDB collection on disk)
  all         Run all tests
  coverage    Run tests with coverage report
  debug       Run tests with debugging output
  specific    Run specific test file or function

Examples:
  python run_tests.py unit
  python run_tests.py coverage
  python run_tests.py specific tests/rag/test_text_chunker.py::TestChunkText
        """)
        sys.exit(1)

    option = sys.argv[1].lower()
    success = True

    if option == "unit":
        success = run_command(pytest_command("tests/", "-m", "unit", "-v"), "Unit Tests")

    elif option == "integration":
        success = run_command(
            pytest_command("tests/", "-m", "integration", "-v"), "Integration Tests"
        )

    elif option == "all":
        # Run unit tests first
        unit_success = run_command(pytest_command("tests/", "-m", "unit", "-v"), "Unit Tests")
        integration_success = run_command(
            pytest_command("tests/", "-m", "integration", "-v"), "Integration Tests"
        )
        success = unit_success and integration_success

    elif option == "coverage":
        success = run_command(pytest_command(
            "tests/",
            "--cov=notes_buddy",
            "--cov-report=html",
            "--cov-report=term",
            "-v",
        ), "Coverage Tests")

        if success:
            print("\n📊 Coverage report generated in htmlcov/index.html")

    elif option == "debug":
        success = run_command(pytest_command(
            "tests/",
            "-v",
            "-s",
            "--tb=long",
            "--log-cli-level=DEBUG",
        ), "Debug Tests")

    elif option == "specific":
        if len(sys.argv) < 3:
            print("Error: Please specify test file or function")
            print("Example: python run_tests.py specific tests/rag/test_vector_store.py")
            sys.exit(1)

        test_target = sys.argv[2]
        success = run_command(pytest_command(test_target, "-v", "-s"), f"Specific Test: {test_target}")

    else:
        print(f"❌ Unknown option: {option}")
        sys.exit(1)

    print(f"\n{'='*60}")
    if success:
        print("🎉 ALL TESTS PASSED!")
    else:
        print("❌ SOME TESTS FAILED!")
        print("🔍 Check the output above for details")
        sys.exit(1)
    print(f"{'='*60}")


if __name__ == "__main__":
    main()
