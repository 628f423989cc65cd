import pytest

from ppmchat.utils.deeplinks import DeepLinkBuilder

BASE = "https://clarity.example.com"


@pytest.fixture
def links():
    return DeepLinkBuilder(BASE + "/ppm/rest/v1")


class TestDeepLinkBuilder:
    def test_base_url_strips_rest_path(self, links):
        assert links.base_url == BASE
        assert DeepLinkBuilder(BASE + "/ppm/rest/v1/").base_url == BASE
        assert DeepLinkBuilder(BASE + "/").base_url == BASE

    def test_list_links(self, links):
        assert links.list_link("projects") == f"{BASE}/pm/#/projects/common"
        assert links.list_link("timesheets") == f"{BASE}/pm/#/timesheets/common"
        assert links.list_link("custRiskRegister") == f"{BASE}/pm/#/customobjects/custRiskRegister/common"
        assert links.list_link("investments") == f"{BASE}/pm/#/investments/common"

    def test_record_links(self, links):
        assert links.record_link("projects", 5001) == f"{BASE}/pm/#/project/5001/properties"
        assert links.record_link("projects", 5001, tab="tasks") == f"{BASE}/pm/#/project/5001/tasks"
        assert links.record_link("tasks", "77") == f"{BASE}/pm/#/task/77/properties"
        assert links.record_link("custRiskRegister", 9) == f"{BASE}/pm/#/customobjects/custRiskRegister/9"

    def test_project_tasks_and_create(self, links):
        assert links.project_tasks_link(5001) == f"{BASE}/pm/#/project/5001/tasks"
        assert links.create_link("projects") == f"{BASE}/pm/#/projects/new"
        assert links.create_link("custThing") == f"{BASE}/pm/#/customobjects/custThing/new"

    def test_filtered_link_encodes_value(self, links):
        url = links.filtered_link("projects", "status", "On Hold")
        assert url == f"{BASE}/pm/#/projects/common?filter=status%3DOn%20Hold"

    def test_filtered_link_keeps_quote_and_parens(self, links):
        url = links.filtered_link("projects", "name", "Bob's (test)")
        assert url.endswith("?filter=name%3DBob's%20(test)")

    def test_multi_filter_link(self, links):
        url = links.multi_filter_link("tasks", {"status": "Open", "owner": "Dana"})
        assert url == f"{BASE}/pm/#/tasks/common?filter=status%3DOpen%26owner%3DDana"

    def test_is_custom_object(self):
        assert DeepLinkBuilder.is_custom_object("custFoo")
        assert DeepLinkBuilder.is_custom_object("CUSTOMER")
        assert not DeepLinkBuilder.is_custom_object("projects")

    @pytest.mark.parametrize(
        "url, expected",
        [
            (f"{BASE}/pm/#/customobjects/custFoo/12", {"objectType": "custFoo", "recordId": "12"}),
            (f"{BASE}/pm/#/customobjects/custFoo/common", {"objectType": "custFoo", "recordId": None}),
            (f"{BASE}/pm/#/projects/common", {"objectType": "projects", "recordId": None}),
            (f"{BASE}/pm/#/project/5001/properties", {"objectType": "project", "recordId": "5001"}),
            ("https://elsewhere.example.com/", None),
        ],
    )
    def test_parse_url(self, url, expected):
        assert DeepLinkBuilder.parse_url(url) == expected

    def test_markdown(self, links):
        assert links.markdown("All", "http://x") == "[All](http://x)"
        md = links.drill_down_markdown("projects", "Projects", "status", "Status", "Active")
        assert md == f'[Projects where Status = "Active"]({BASE}/pm/#/projects/common?filter=status%3DActive)'
