"""
Tests for the template renderer.
"""

import pytest

from src.core.engine.errors import FatalError
from src.core.engine.renderer import RenderContext, TemplateRenderer
from src.core.models.plan import Task


@pytest.fixture
def context() -> RenderContext:
    return RenderContext(
        instance_name="demo",
        namespace="ns",
        operator_name="shop",
        operator_version="1.0.0",
        plan_name="deploy",
        phase_name="main",
        step_name="app",
        step_number=2,
        params={"image": "nginx", "password": "hunter2"},
    )


class TestRender:
    def test_variables(self, context):
        out = TemplateRenderer().render(
            "t.yaml",
            "{{ Name }} {{ Namespace }} {{ OperatorName }} {{ OperatorVersion }} "
            "{{ PlanName }} {{ PhaseName }} {{ StepName }} {{ StepNumber }}",
            context,
        )
        assert out == "demo ns shop 1.0.0 deploy main app 2"

    def test_step_number_is_a_string(self, context):
        assert context.variables()["StepNumber"] == "2"

    def test_params(self, context):
        out = TemplateRenderer().render("t.yaml", "image: {{ Params.image }}", context)
        assert out == "image: nginx"

    def test_is_deterministic(self, context):
        renderer = TemplateRenderer()
        source = "{{ Name }}-{{ Params.image }}"
        assert renderer.render("t", source, context) == renderer.render("t", source, context)

    def test_trailing_newline_kept(self, context):
        assert TemplateRenderer().render("t", "a: b\n", context) == "a: b\n"

    def test_undefined_param_is_fatal(self, context):
        with pytest.raises(FatalError, match="t.yaml"):
            TemplateRenderer().render("t.yaml", "{{ Params.nope }}", context)

    def test_syntax_error_is_fatal(self, context):
        with pytest.raises(FatalError):
            TemplateRenderer().render("t.yaml", "{% if %}", context)

    def test_sandbox_blocks_attribute_escape(self, context):
        with pytest.raises(FatalError):
            TemplateRenderer().render(
                "t.yaml", "{{ Name.__class__.__mro__[1].__subclasses__() }}", context,
            )


class TestFilters:
    def test_b64enc(self, context):
        out = TemplateRenderer().render("t", "{{ Params.password | b64enc }}", context)
        assert out == "aHVudGVyMg=="

    def test_b64dec(self, context):
        assert TemplateRenderer().render("t", "{{ 'aHVudGVyMg==' | b64dec }}", context) == "hunter2"

    def test_toyaml(self, context):
        out = TemplateRenderer().render("t", "{{ Params | toyaml }}", context)
        assert "image: nginx" in out
        assert "password: hunter2" in out

    def test_b64dec_of_bad_input_is_fatal(self, context):
        context.params["token"] = "not base64!!"
        with pytest.raises(FatalError, match="t.yaml"):
            TemplateRenderer().render("t.yaml", "{{ Params.token | b64dec }}", context)

    def test_b64dec_of_non_utf8_is_fatal(self, context):
        with pytest.raises(FatalError):
            TemplateRenderer().render("t.yaml", "{{ '/w==' | b64dec }}", context)

    def test_arithmetic_error_is_fatal(self, context):
        context.params["n"] = "0"
        with pytest.raises(FatalError, match="ZeroDivisionError"):
            TemplateRenderer().render("t.yaml", "{{ 1 // (Params.n | int) }}", context)


class TestRenderStep:
    def test_renders_each_template_once_in_order(self, context):
        tasks = {
            "a": Task(name="a", resources=["one.yaml", "two.yaml"]),
            "b": Task(name="b", resources=["two.yaml", "three.yaml"]),
        }
        templates = {"one.yaml": "1", "two.yaml": "2", "three.yaml": "3"}
        out = TemplateRenderer().render_step(["a", "b"], tasks, templates, context)
        assert out == {"one.yaml": "1", "two.yaml": "2", "three.yaml": "3"}
        assert list(out) == ["one.yaml", "two.yaml", "three.yaml"]

    def test_unknown_task(self, context):
        with pytest.raises(FatalError, match="task named nope"):
            TemplateRenderer().render_step(["nope"], {}, {}, context)

    def test_unknown_template(self, context):
        tasks = {"a": Task(name="a", resources=["missing.yaml"])}
        with pytest.raises(FatalError, match="missing.yaml"):
            TemplateRenderer().render_step(["a"], tasks, {}, context)

    def test_render_templates_subset(self, context):
        out = TemplateRenderer().render_templates(
            ["b"], {"a": "{{ Name }}", "b": "{{ Namespace }}"}, context,
        )
        assert out == {"b": "ns"}
