from tessera.sitemap import generate_robots, generate_sitemap, write_index


def test_disallow_matches_whole_path_segments():
    xml = generate_sitemap(
        ["/drafts-archive.html", "/drafts/wip.html", "/drafts", "/about/index.html"],
        "https://example.com/",
        ["drafts/"],
    )
    assert "<loc>https://example.com/drafts-archive.html</loc>" in xml
    assert "<loc>https://example.com/about/</loc>" in xml
    assert "drafts/wip" not in xml
    assert "<loc>https://example.com/drafts</loc>" not in xml


def test_robots_without_rules_allows_everything():
    assert generate_robots("https://example.com", []) == (
        "User-agent: *\nDisallow:\nSitemap: https://example.com/sitemap.xml\n"
    )


def test_write_index_skips_robots_unless_asked(tmp_path):
    written = write_index(["/index.html"], tmp_path, "https://example.com")
    assert [p.name for p in written] == ["sitemap.xml"]
    assert not (tmp_path / "robots.txt").exists()
