from workbench_sync.filesystem import File, Folder
from workbench_sync.modifications import compute_file_modifications


def test_small_edit_in_large_file_is_a_diff():
    original = "".join(f"line {i}\n" for i in range(200))
    current = original.replace("line 100\n", "line one hundred\n")

    result = compute_file_modifications({"/project/big.txt": File(content=current)}, {"/project/big.txt": original})

    assert result["/project/big.txt"]["type"] == "diff"
    assert "+line one hundred" in result["/project/big.txt"]["content"]
    assert "-line 100" in result["/project/big.txt"]["content"]


def test_rewrite_of_small_file_sends_full_content():
    result = compute_file_modifications({"/project/a.txt": File(content="new")}, {"/project/a.txt": "old"})

    assert result == {"/project/a.txt": {"type": "file", "content": "new"}}


def test_unchanged_binary_and_removed_paths_are_skipped():
    files = {
        "/project/same.txt": File(content="same"),
        "/project/logo.png": File(content="...", is_binary=True),
        "/project/dir": Folder(),
    }
    baseline = {
        "/project/same.txt": "same",
        "/project/logo.png": "old",
        "/project/dir": "was a file",
        "/project/gone.txt": "bye",
    }

    assert compute_file_modifications(files, baseline) == {}
