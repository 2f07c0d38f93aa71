import pytest

from urlrelay.proxy.url_codec import RewriteContext
from urlrelay.rewriters.playlist import PlaylistRewriter, is_playlist, playlist_base

PROXY = "https://proxy.example"
TARGET = "https://media.example/stream/master.m3u8?token=abc"

MASTER = """#EXTM3U
#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=854x480
video/480p/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=1400000,RESOLUTION=1280x720
https://cdn.example/720p/index.m3u8
"""


@pytest.fixture
def rewriter():
    return PlaylistRewriter(RewriteContext(proxy_origin=PROXY, target=TARGET))


class TestDetection:
    @pytest.mark.parametrize(
        "content_type",
        ["application/vnd.apple.mpegurl", "audio/x-mpegURL", "application/x-mpegurl; charset=utf-8"],
    )
    def test_by_content_type(self, content_type):
        assert is_playlist(content_type, "https://media.example/live")

    def test_by_extension(self):
        assert is_playlist("application/octet-stream", "https://media.example/a/index.m3u8?x=1")
        assert is_playlist(None, "https://media.example/a/list.M3U")

    def test_other_content(self):
        assert not is_playlist("video/mp2t", "https://media.example/a/seg1.ts")

    def test_base_drops_file_and_query(self):
        assert playlist_base(TARGET) == "https://media.example/stream/"
        assert playlist_base("https://media.example") == "https://media.example/"


class TestRewrite:
    def test_master_playlist(self, rewriter):
        lines = rewriter.rewrite(MASTER).split("\n")
        assert lines[0] == "#EXTM3U"
        assert lines[1] == "#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=854x480"
        assert lines[2] == f"{PROXY}/https://media.example/stream/video/480p/index.m3u8"
        assert lines[4] == f"{PROXY}/https://cdn.example/720p/index.m3u8"
        assert lines[5] == ""

    def test_root_relative_segment(self, rewriter):
        assert (
            rewriter.rewrite("/segments/seg1.ts")
            == f"{PROXY}/https://media.example/segments/seg1.ts"
        )

    def test_tags_untouched(self, rewriter):
        text = '#EXTM3U\n#EXT-X-KEY:METHOD=AES-128,URI="key.bin"\n#EXTINF:9.009,\n'
        assert rewriter.rewrite(text) == text

    def test_crlf_preserved(self, rewriter):
        text = "#EXTM3U\r\n#EXTINF:10,\r\nseg1.ts\r\n"
        assert (
            rewriter.rewrite(text)
            == f"#EXTM3U\r\n#EXTINF:10,\r\n{PROXY}/https://media.example/stream/seg1.ts\r\n"
        )

    def test_already_proxied_line_kept(self, rewriter):
        line = f"{PROXY}/https://media.example/stream/seg1.ts"
        assert rewriter.rewrite(line) == line

    def test_unparseable_line_kept(self, rewriter):
        assert rewriter.rewrite("http://[broken/seg.ts") == "http://[broken/seg.ts"

    def test_bytes(self, rewriter):
        body = b"#EXTM3U\n#EXTINF:10,\nseg1.ts\n"
        assert rewriter.rewrite_bytes(body) == (
            b"#EXTM3U\n#EXTINF:10,\n" + f"{PROXY}/https://media.example/stream/seg1.ts".encode() + b"\n"
        )
