import hashlib
import unittest

from csschunk.core.filenames import derive_chunk_filename, render_filename, skin_filename
from csschunk.core.hashing import content_hash, create_hash, encode_digest, fold_chunk_maps
from csschunk.core.modules import CssModule


class TestFilenames(unittest.TestCase):
    def test_derive_chunk_filename(self) -> None:
        self.assertEqual(derive_chunk_filename("[name].css"), "[name].css")
        self.assertEqual(derive_chunk_filename("css/[chunkhash].css"), "css/[chunkhash].css")
        self.assertEqual(derive_chunk_filename("styles.css"), "[id].styles.css")
        self.assertEqual(derive_chunk_filename("css/app/styles.css"), "css/app/[id].styles.css")
        self.assertEqual(derive_chunk_filename("[contenthash].css"), "[id].[contenthash].css")

    def test_skin_filename_prefixes_basename(self) -> None:
        self.assertEqual(skin_filename("css/[name].css", "dark"), "css/dark@[name].css")
        self.assertEqual(skin_filename("[name].css", "dark"), "dark@[name].css")
        self.assertEqual(skin_filename("css/[name].css", ""), "css/[name].css")

    def test_render_filename_placeholders(self) -> None:
        rendered = render_filename(
            "css/[name].[ID].[chunkhash:4].[contenthash:6].[hash:2].css",
            chunk_id=7,
            name="page",
            chunk_hash="abcdef",
            content_hash="0123456789",
            full_hash="ffee",
        )
        self.assertEqual(rendered, "css/page.7.abcd.012345.ff.css")

    def test_name_falls_back_to_id(self) -> None:
        self.assertEqual(render_filename("[name].css", chunk_id=3), "3.css")


class TestHashing(unittest.TestCase):
    def test_content_hash_tracks_module_content(self) -> None:
        first = [CssModule("./a.css", ".a{}"), CssModule("./b.css", ".b{}")]
        changed = [CssModule("./a.css", ".a{}"), CssModule("./b.css", ".b{color:red}")]

        self.assertEqual(content_hash(first), content_hash(list(first)))
        self.assertNotEqual(content_hash(first), content_hash(changed))
        self.assertEqual(len(content_hash(first)), 20)
        self.assertEqual(len(content_hash(first, hash_function="md5", hash_digest_length=8)), 8)

    def test_content_hash_ignores_non_css_modules(self) -> None:
        modules = [CssModule("./a.css", ".a{}")]
        mixed = [*modules, CssModule("./a.js", "x", module_type="javascript/auto")]
        self.assertEqual(content_hash(modules), content_hash(mixed))

    def test_unsupported_hash_settings(self) -> None:
        with self.assertRaises(ValueError):
            create_hash("not-a-hash")
        with self.assertRaises(ValueError):
            encode_digest(hashlib.sha256(b"x"), "base32")

    def test_base64_digest(self) -> None:
        encoded = encode_digest(hashlib.sha256(b"x"), "base64")
        self.assertEqual(len(encoded), 44)
        self.assertTrue(encoded.endswith("="))
        self.assertEqual(encode_digest(hashlib.md5(b""), "base64"), "1B2M2Y8AsgTpgAmY7PhCfg==")

    def test_fold_only_maps_the_template_uses(self) -> None:
        maps = {
            "hash_map": {"1": "aaaa"},
            "content_hash_map": {"1": "bbbb"},
            "name_map": {"1": "page"},
        }
        plain = create_hash()
        fold_chunk_maps(plain, "[id].css", **maps)
        self.assertEqual(plain.hexdigest(), create_hash().hexdigest())

        with_content = create_hash()
        fold_chunk_maps(with_content, "[id].[contenthash].css", **maps)
        with_other = create_hash()
        fold_chunk_maps(
            with_other,
            "[id].[contenthash].css",
            **{**maps, "content_hash_map": {"1": "cccc"}},
        )
        self.assertNotEqual(with_content.hexdigest(), with_other.hexdigest())


if __name__ == "__main__":
    unittest.main()
