import unittest

from csschunk.core.template import CodeBuilder, Json, as_string, indent


class TestCodeBuilder(unittest.TestCase):
    def test_blocks_indent_with_tabs(self) -> None:
        code = CodeBuilder()
        with code.block("if(ready) {"):
            code.line("var table = ", Json({"a": [1, 2]}), ";")
            with code.block("for(;;) {"):
                code.line("break;")
        self.assertEqual(
            code.render(),
            'if(ready) {\n\tvar table = {"a":[1,2]};\n\tfor(;;) {\n\t\tbreak;\n\t}\n}',
        )

    def test_conditional_and_dropped_fragments(self) -> None:
        code = CodeBuilder()
        code.when(False, "never();")
        code.when(True, "always(", None, ");")
        self.assertEqual(code.render(), "always();")

    def test_source_is_indented_at_current_depth(self) -> None:
        code = CodeBuilder()
        with code.block("function f() {"):
            code.source("a();\n\nb();")
        self.assertEqual(code.render(), "function f() {\n\ta();\n\n\tb();\n}")

    def test_unsupported_fragment_raises(self) -> None:
        with self.assertRaises(TypeError):
            CodeBuilder().line("x = ", 3)

    def test_helpers(self) -> None:
        self.assertEqual(indent("a\n\nb", 2), "\t\ta\n\n\t\tb")
        self.assertEqual(as_string(["a", "b"]), "a\nb")
        self.assertEqual(Json("é").render(), '"é"')


if __name__ == "__main__":
    unittest.main()
