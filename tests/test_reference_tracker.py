"""Tests for reference_tracker.py: symbol-based reference search across documents."""

import pytest
from resx_scanner.analyzer.reference_tracker import (
    ReferenceSearchResult,
    ReferenceTracker,
    UnsupportedReferenceSearch,
)
from resx_scanner.analyzer.symbol_index import SymbolIndex


SERVICES = '''
namespace App
{
    public interface IService
    {
        string Run();
        string Name { get; }
    }

    public class Service : IService
    {
        public string Run() => "run";
        public string Name => "name";
    }

    public class Other
    {
        public string Run() => "other";
    }

    public static class Native
    {
        [System.Runtime.InteropServices.DllImport("native")]
        public static extern int Run();
    }
}
'''

CONSUMER = '''
namespace App
{
    public class Consumer
    {
        private readonly IService _service;
        private readonly Other _other;

        public string Call()
        {
            var Run = 1;
            return _service.Run() + _other.Run() + Run.ToString();
        }

        public string Label() => _service.Name;
    }
}
'''

DIRECT = '''
namespace App
{
    public class Direct
    {
        public string Go(Service s) => s.Run();
    }
}
'''

UNRELATED = '''
namespace App
{
    public class Quiet
    {
        public int Count() => 0;
    }
}
'''


@pytest.fixture(scope='module')
def index():
    return SymbolIndex.from_sources({
        '/src/Services.cs': SERVICES,
        '/src/Consumer.cs': CONSUMER,
        '/src/Direct.cs': DIRECT,
        '/src/Quiet.cs': UNRELATED,
    })


def member(index, owner, name):
    (symbol,) = [m for m in index.members[owner] if m.name == name]
    return symbol


class TestFindReferences:
    """Test reference search through interfaces, receivers and shadowing."""

    async def test_implementation_found_through_interface(self, index):
        """_service is typed IService; the call still reaches Service.Run."""
        result = await ReferenceTracker(index).find_references(member(index, 'App.Service', 'Run'))

        assert sorted(set(result.reference_paths)) == ['/src/Consumer.cs', '/src/Direct.cs']
        assert result.definitions == ('/src/Services.cs',)

    async def test_unrelated_same_name_is_ignored(self, index):
        """Other.Run, the local named Run and IService.Run do not bind to each other's receivers."""
        result = await ReferenceTracker(index).find_references(member(index, 'App.Other', 'Run'))

        assert result.reference_paths == ['/src/Consumer.cs']
        assert [ref.line for ref in result.references] == [12]

    async def test_properties(self, index):
        result = await ReferenceTracker(index).find_references(member(index, 'App.IService', 'Name'))
        assert result.reference_paths == ['/src/Consumer.cs']

    async def test_unreferenced_member(self, index):
        result = await ReferenceTracker(index).find_references(member(index, 'App.Quiet', 'Count'))
        assert result == ReferenceSearchResult((), ('/src/Quiet.cs',))

    async def test_extern_members_are_unsupported(self, index):
        with pytest.raises(UnsupportedReferenceSearch):
            await ReferenceTracker(index).find_references(member(index, 'App.Native', 'Run'))


class TestMemberFamily:
    """Test the override / implementation family used for matching."""

    def test_interface_and_implementation(self, index):
        family = index.member_family(member(index, 'App.Service', 'Run'))
        assert {m.qualified_name for m in family} == {'App.Service.Run', 'App.IService.Run'}

    def test_unrelated_types_excluded(self, index):
        family = index.member_family(member(index, 'App.Other', 'Run'))
        assert {m.qualified_name for m in family} == {'App.Other.Run'}


OVERLOADED = '''
namespace App
{
    public class Greeter
    {
        public string Title => "title";
        public string Greet() => "hello";
        public string Greet(int times) => "hello " + times;
    }
}
'''

COUNTED_CALLER = '''
namespace App
{
    public class Counted
    {
        public string Go(Greeter g) => g.Greet(5);
    }
}
'''

NULL_CONDITIONAL_CALLER = '''
namespace App
{
    public class Guarded
    {
        public string Go(Greeter g) => g?.Greet();

        public string Label(Greeter g) => g?.Title;
    }
}
'''


@pytest.fixture(scope='module')
def overloaded_index():
    return SymbolIndex.from_sources({
        '/src/Greeter.cs': OVERLOADED,
        '/src/Counted.cs': COUNTED_CALLER,
        '/src/Guarded.cs': NULL_CONDITIONAL_CALLER,
    })


def overload(index, owner, name, parameters):
    (symbol,) = [m for m in index.members[owner] if m.name == name and m.parameter_count == parameters]
    return symbol


class TestOverloads:
    """Test that calls bind to the overload whose parameters fit the arguments."""

    async def test_other_overload_call_is_not_a_reference(self, overloaded_index):
        greet = overload(overloaded_index, 'App.Greeter', 'Greet', 0)
        result = await ReferenceTracker(overloaded_index).find_references(greet)

        assert '/src/Counted.cs' not in result.reference_paths

    async def test_matching_overload_call_is_a_reference(self, overloaded_index):
        greet = overload(overloaded_index, 'App.Greeter', 'Greet', 1)
        result = await ReferenceTracker(overloaded_index).find_references(greet)

        assert result.reference_paths == ['/src/Counted.cs']

    def test_family_excludes_sibling_overloads(self, overloaded_index):
        greet = overload(overloaded_index, 'App.Greeter', 'Greet', 0)
        assert overloaded_index.member_family(greet) == {greet}


class TestNullConditionalAccess:
    """Test `x?.Name` and `x?.Name()` binding through the type of `x`."""

    async def test_method_call(self, overloaded_index):
        greet = overload(overloaded_index, 'App.Greeter', 'Greet', 0)
        result = await ReferenceTracker(overloaded_index).find_references(greet)

        assert result.reference_paths == ['/src/Guarded.cs']
        assert [ref.line for ref in result.references] == [6]

    async def test_property_read(self, overloaded_index):
        title = member(overloaded_index, 'App.Greeter', 'Title')
        result = await ReferenceTracker(overloaded_index).find_references(title)

        assert result.reference_paths == ['/src/Guarded.cs']
        assert [ref.line for ref in result.references] == [8]
