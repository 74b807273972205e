from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def test_pose_runtime_is_a_core_dependency():
    pyproject = (ROOT / 'pyproject.toml').read_text()
    core = pyproject.split('[project.optional-dependencies]')[0]
    assert '"mediapipe' in core
    assert 'readme = "README.md"' in pyproject
    assert (ROOT / 'README.md').exists()
