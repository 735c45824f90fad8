"""Run commands on cluster nodes over SSH, directly or through a bastion host"""

__version__ = "0.1.0"
