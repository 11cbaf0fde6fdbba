import pytest

from omnisight.core.dtypes import Role
from omnisight.core.errors import ConfigError
from omnisight.core.pipeline import StageDescriptor, build_plan, build_plans, resolve_config, validate_plan
from omnisight.core.pipeline.decoders import decode_landmarks
from omnisight.core.pipeline.labels import COCO_LABELS
from omnisight.core.pipeline.regions import prepare_region


def _stage(name, depends_on=()):
    return StageDescriptor(
        name=name, model_id=f"{name}.onnx",
        prepare=prepare_region, decode=decode_landmarks, depends_on=depends_on,
    )


class TestBuildPlans:
    def test_enabled_roles_in_declared_order(self):
        plans = build_plans(resolve_config({"object": {"enabled": True}}))
        assert [p.role for p in plans] == [Role.FACE, Role.BODY, Role.HAND, Role.OBJECT]

    def test_disabled_roles_have_no_plan(self):
        config = resolve_config()
        assert build_plan(Role.OBJECT, config) is None
        assert [p.role for p in build_plans(config)] == [Role.FACE, Role.BODY, Role.HAND]

    def test_face_stages_and_policies(self):
        plan = build_plan(Role.FACE, resolve_config())
        assert plan.stage_names() == ["mesh", "iris", "description", "emotion"]
        stages = {s.name: s for s in plan.stages}
        assert stages["iris"].depends_on == ("mesh",)
        assert stages["mesh"].policy is None
        assert stages["description"].policy.skip_frames == 31
        assert stages["emotion"].policy.skip_frames == 32
        assert stages["emotion"].min_confidence == pytest.approx(0.1)
        assert plan.detector_policy.skip_frames == 21

    def test_disabled_dependency_drops_dependent_stage(self):
        plan = build_plan(Role.FACE, resolve_config({"face": {"mesh": {"enabled": False}}}))
        assert plan.stage_names() == ["description", "emotion"]

    def test_hand_without_landmarks(self):
        config = resolve_config({"hand": {"landmarks": False}})
        assert build_plan(Role.HAND, config).stages == ()

        restored = resolve_config({"hand": {"landmarks": True}}, base=config)
        assert build_plan(Role.HAND, restored).stage_names() == ["skeleton"]

    def test_object_plan_carries_labels(self):
        plan = build_plan(Role.OBJECT, resolve_config({"object": {"enabled": True}}))
        assert plan.labels == COCO_LABELS


class TestValidatePlan:
    def _plan(self, *stages):
        plan = build_plan(Role.FACE, resolve_config())
        return type(plan)(role=plan.role, detector=plan.detector, stages=tuple(stages))

    def test_dependency_on_later_stage_is_rejected(self):
        with pytest.raises(ConfigError):
            validate_plan(self._plan(_stage("iris", ("mesh",)), _stage("mesh")))

    def test_unknown_dependency_is_rejected(self):
        with pytest.raises(ConfigError):
            validate_plan(self._plan(_stage("iris", ("retina",))))

    def test_duplicate_stage_is_rejected(self):
        with pytest.raises(ConfigError):
            validate_plan(self._plan(_stage("mesh"), _stage("mesh")))

    def test_empty_model_path_is_rejected(self):
        with pytest.raises(ConfigError):
            build_plans(resolve_config({"body": {"detector": {"model_path": ""}}}))
