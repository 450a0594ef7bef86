"""
Centralized path configuration for ContainerPulse
Ensures all modules use consistent, volume-mounted paths
"""

import os

# Base paths - these MUST use absolute paths to the volume mount
# /var/lib/containerpulse and /var/log/containerpulse are volumes in the image
DATA_DIR = os.getenv('CONTAINERPULSE_DATA_DIR', '/var/lib/containerpulse')
LOG_DIR = os.getenv('CONTAINERPULSE_LOG_DIR', '/var/log/containerpulse')

# Inventory snapshot read by the dashboard
INVENTORY_FILE = os.path.join(DATA_DIR, 'container-inventory', 'inventory.json')

# Per-container raw inspect dumps and pre-update backups
BACKUP_DIR = os.path.join(DATA_DIR, 'backups')

# Release controller snapshots of the updater's own deployment
DEPLOYMENT_BACKUP_DIR = os.path.join(DATA_DIR, 'deployment-backups')

# Self-update handoff marker shared with the watchdog
HANDOFF_FILE = os.path.join(DATA_DIR, 'self-update.handoff.json')

# Compose file for the updater itself (copied here before a self-update)
PERSISTED_COMPOSE_FILE = os.path.join(DATA_DIR, 'docker-compose.prod.yml')


def ensure_data_dirs():
    """Create data directories if they don't exist"""
    for directory in [DATA_DIR, LOG_DIR, os.path.dirname(INVENTORY_FILE), BACKUP_DIR, DEPLOYMENT_BACKUP_DIR]:
        os.makedirs(directory, exist_ok=True)


# For development/testing outside the container
if not os.path.exists('/var/lib/containerpulse') and 'CONTAINERPULSE_DATA_DIR' not in os.environ:
    # Running locally, use relative paths
    DATA_DIR = './data'
    INVENTORY_FILE = os.path.join(DATA_DIR, 'container-inventory', 'inventory.json')
    BACKUP_DIR = os.path.join(DATA_DIR, 'backups')
    DEPLOYMENT_BACKUP_DIR = os.path.join(DATA_DIR, 'deployment-backups')
    HANDOFF_FILE = os.path.join(DATA_DIR, 'self-update.handoff.json')
    PERSISTED_COMPOSE_FILE = os.path.join(DATA_DIR, 'docker-compose.prod.yml')

if not os.path.exists('/var/log/containerpulse') and 'CONTAINERPULSE_LOG_DIR' not in os.environ:
    LOG_DIR = os.path.join(DATA_DIR, 'logs')
