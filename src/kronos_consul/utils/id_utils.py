import uuid

from kronos_consul.utils.net_utils import NetUtils


class IdUtils:
    @staticmethod
    def generate_instance_id(prefix: str = "kronos") -> str:
        """Generate a process-unique registration id with the given prefix."""
        return f"{prefix}-{NetUtils.get_local_ip()}-{uuid.uuid4().hex[:8]}"
