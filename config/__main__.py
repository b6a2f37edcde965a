"""Command line interface for checking configuration loading"""
from . import settings_conf, DEFAULTS
from pathlib import Path

def main():
    """Display loaded configuration"""
    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in settings_conf.items():
        marker = "" if str(value) == str(DEFAULTS.get(key)) else "  (from settings.conf)"
        print(f"{key}: {value}{marker}")

    # Save example configuration file
    examples_dir = Path("examples")
    examples_dir.mkdir(exist_ok=True)

    with open(examples_dir / "settings.conf.example", "w") as f:
        f.write("""[DEFAULT]
# Where the local store lives: sqlite, memory or postgres
storage_backend = sqlite
storage_path = ~/.swipeme/store.db
# Only used by the postgres backend
db_url = postgresql://root@localhost:26257/defaultdb?sslmode=disable
# Disappearing-message sweep cadence in seconds
sweep_interval_seconds = 60
# Pending messages are abandoned after this many failed sends
max_send_attempts = 5
log_level = INFO
""")

if __name__ == "__main__":
    main()
