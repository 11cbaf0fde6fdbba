"""
Role pipelines driven through a session on the scripted backend: detection
reuse, sub-stage scheduling, failure isolation and state bookkeeping.
"""
import asyncio

import numpy as np
import pytest

from omnisight.core.dtypes import Role
from omnisight.core.scheduling import SkipState, StateChanges, StateKey

from .conftest import FACE_BOX

SECOND_FACE = {"x": 60, "y": 10, "width": 30, "height": 30, "confidence": 0.6}


async def _frames(session, image, count):
    return [await session.detect(image) for _ in range(count)]


class TestDetectionReuse:
    @pytest.mark.asyncio
    async def test_detector_runs_every_skip_frames(self, make_session, backend, image):
        session = make_session({"face": {"detector": {"skip_frames": 3}}})
        results = await _frames(session, image, 7)

        assert backend.count("blazeface.onnx") == 3  # frames 1, 4, 7
        assert backend.count("posenet.onnx") == 7    # skip_frames 0
        assert backend.count("handdetect.onnx") == 1
        assert all(len(r.by_role(Role.FACE)) == 1 for r in results)
        assert {r.by_role(Role.FACE)[0].instance_id for r in results} == {1}

    @pytest.mark.asyncio
    async def test_sub_stages_run_on_reused_regions(self, make_session, backend, image):
        session = make_session({"face": {"detector": {"skip_frames": 10}}})
        results = await _frames(session, image, 3)

        assert backend.count("blazeface.onnx") == 1
        assert backend.count("facemesh.onnx") == 3
        assert backend.count("faceres.onnx") == 1
        assert backend.count("emotion.onnx") == 1
        fields = results[-1].by_role(Role.FACE)[0].fields
        assert fields["emotion"] == [{"score": 0.75, "emotion": "happy"}, {"score": 0.25, "emotion": "sad"}]
        assert fields["description"]["age"] == 30.0

    @pytest.mark.asyncio
    async def test_video_optimisation_off_always_detects(self, make_session, backend, image):
        session = make_session({"video_optimized": False})
        results = await _frames(session, image, 3)

        assert backend.count("blazeface.onnx") == 3
        assert backend.count("emotion.onnx") == 3
        assert len(session.store) == 0
        assert [r.by_role(Role.FACE)[0].instance_id for r in results] == [1, 1, 1]

    @pytest.mark.asyncio
    async def test_skip_initial_detects_after_empty_frame(self, make_session, backend, image):
        session = make_session({"face": {"detector": {"skip_frames": 5, "skip_initial": True}}})
        backend.queue("blazeface.onnx", [])
        first, second = await _frames(session, image, 2)

        assert first.by_role(Role.FACE) == []
        assert len(second.by_role(Role.FACE)) == 1
        assert backend.count("blazeface.onnx") == 2

    @pytest.mark.asyncio
    async def test_empty_result_is_reused_without_skip_initial(self, make_session, backend, image):
        session = make_session({"face": {"detector": {"skip_frames": 5, "skip_initial": False}}})
        backend.queue("blazeface.onnx", [])
        first, second = await _frames(session, image, 2)

        assert first.by_role(Role.FACE) == []
        assert second.by_role(Role.FACE) == []
        assert backend.count("blazeface.onnx") == 1

    @pytest.mark.asyncio
    async def test_inconsistent_state_forces_fresh_detection(self, make_session, backend, image):
        session = make_session()
        changes = StateChanges(Role.FACE)
        changes.stage(StateKey(Role.FACE, "detector"), SkipState(frames_since_detect=1, last_was_empty=False))
        session.store.commit(changes)

        result = await session.detect(image)

        assert backend.count("blazeface.onnx") == 1
        assert len(result.by_role(Role.FACE)) == 1
        assert session.store.snapshot()["face/detector"]["frames_since_detect"] == 0

    @pytest.mark.asyncio
    async def test_overlapping_detections_are_suppressed(self, make_session, backend, image):
        session = make_session({"face": {"detector": {"iou_threshold": 0.5}}})
        backend.queue("blazeface.onnx", [
            {"x": 11, "y": 10, "width": 40, "height": 40, "confidence": 0.6},
            FACE_BOX,
        ])
        result = await session.detect(image)

        faces = result.by_role(Role.FACE)
        assert len(faces) == 1
        assert faces[0].box.confidence == 0.9

    @pytest.mark.asyncio
    async def test_half_overlapping_detections_keep_only_the_stronger(self, make_session, backend, image):
        session = make_session({"face": {"detector": {"iou_threshold": 0.4}}})
        backend.queue("blazeface.onnx", [
            {"x": 20, "y": 10, "width": 30, "height": 30, "confidence": 0.6},
            {"x": 10, "y": 10, "width": 30, "height": 30, "confidence": 0.9},
        ])
        result = await session.detect(image)

        faces = result.by_role(Role.FACE)
        assert [f.box.confidence for f in faces] == [0.9]
        assert (faces[0].box.x, faces[0].box.width) == (10.0, 30.0)


class TestInstanceSlots:
    @pytest.mark.asyncio
    async def test_stale_instance_slots_are_pruned(self, make_session, backend, image):
        session = make_session({"face": {"detector": {"skip_frames": 0}}})
        backend.queue("blazeface.onnx", [FACE_BOX, SECOND_FACE], [FACE_BOX])

        first = await session.detect(image)
        assert [f.instance_id for f in first.by_role(Role.FACE)] == [1, 2]
        assert StateKey(Role.FACE, "emotion", 2) in session.store.keys()

        second = await session.detect(image)
        assert [f.instance_id for f in second.by_role(Role.FACE)] == [1]
        assert StateKey(Role.FACE, "emotion", 2) not in session.store.keys()
        assert StateKey(Role.FACE, "emotion", 1) in session.store.keys()
        assert backend.count("emotion.onnx") == 2

    @pytest.mark.asyncio
    async def test_return_crop(self, make_session, image):
        session = make_session({"face": {"return": True}})
        result = await session.detect(image)
        crop = result.by_role(Role.FACE)[0].fields["crop"]
        assert crop.shape == (40, 40, 3)


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_sub_stage_failure_omits_field_and_dependents(self, make_session, backend, image):
        backend.failures.add("facemesh.onnx")
        result = await make_session().detect(image)

        fields = result.by_role(Role.FACE)[0].fields
        assert "mesh" not in fields
        assert "iris" not in fields
        assert "description" in fields
        assert "emotion" in fields
        assert result.failed_roles == []
        assert backend.count("iris.onnx") == 0

    @pytest.mark.asyncio
    async def test_iris_uses_mesh_landmarks(self, make_session, backend, image):
        result = await make_session().detect(image)
        fields = result.by_role(Role.FACE)[0].fields
        assert fields["mesh"].shape == (468, 3)
        assert set(fields["iris"]) == {"left", "right"}
        assert backend.count("iris.onnx") == 2

    @pytest.mark.asyncio
    async def test_detector_failure_fails_only_that_role_for_that_frame(self, make_session, backend, image):
        session = make_session()
        backend.failures.add("handdetect.onnx")
        failed = await session.detect(image)

        assert failed.failed_roles == [Role.HAND]
        assert failed.by_role(Role.HAND) == []
        assert len(failed.by_role(Role.FACE)) == 1
        assert StateKey(Role.HAND, "detector") not in session.store.keys()

        backend.failures.clear()
        recovered = await session.detect(image)
        assert recovered.failed_roles == []
        assert len(recovered.by_role(Role.HAND)) == 1
        assert backend.count("handdetect.onnx") == 2

    @pytest.mark.asyncio
    async def test_malformed_sub_stage_output_omits_only_that_field(self, make_session, backend, image):
        backend.responses["handskeleton.onnx"] = np.ones(5, dtype=np.float32)
        result = await make_session().detect(image)

        assert result.failed_roles == []
        hands = result.by_role(Role.HAND)
        assert len(hands) == 1
        assert "skeleton" not in hands[0].fields
        assert set(result.by_role(Role.FACE)[0].fields) == {"mesh", "iris", "description", "emotion"}

    @pytest.mark.asyncio
    async def test_malformed_detector_output_fails_only_that_role(self, make_session, backend, image):
        session = make_session()
        backend.queue("handdetect.onnx", [{"x": 1, "y": 2}])
        result = await session.detect(image)

        assert result.failed_roles == [Role.HAND]
        assert result.by_role(Role.HAND) == []
        assert len(result.by_role(Role.FACE)) == 1
        assert len(result.by_role(Role.BODY)) == 1
        assert StateKey(Role.HAND, "detector") not in session.store.keys()
        assert StateKey(Role.FACE, "detector") in session.store.keys()

    @pytest.mark.asyncio
    async def test_backend_bug_surfaces_after_all_roles_finish(self, make_session, backend, image):
        def _boom(data):
            raise RuntimeError("backend crashed")

        backend.responses["posenet.onnx"] = _boom
        backend.delays["handskeleton.onnx"] = 0.02
        session = make_session()

        with pytest.raises(RuntimeError, match="backend crashed"):
            await session.detect(image)
        assert "handskeleton.onnx" in backend.completed
        assert len(session.store) == 0


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_frame_leaves_state_untouched(self, make_session, backend, image):
        session = make_session()
        backend.delays["blazeface.onnx"] = 0.5
        task = asyncio.create_task(session.detect(image))
        await asyncio.sleep(0.05)  # body and hand finish, face is still waiting
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert "handskeleton.onnx" in backend.completed
        assert len(session.store) == 0


class TestSerialisation:
    @pytest.mark.asyncio
    async def test_instance_record_to_dict(self, make_session, image):
        result = await make_session().detect(image)
        face = result.by_role(Role.FACE)[0].to_dict()
        assert face["role"] == "face"
        assert face["box"]["instance_id"] == 1
        assert len(face["mesh"]) == 468
        assert isinstance(face["iris"]["left"], list)
        assert np.asarray(face["iris"]["left"]).shape == (5, 3)
