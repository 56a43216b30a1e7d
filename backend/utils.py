import uuid


def gen_job_id() -> str:
    return str(uuid.uuid4())
