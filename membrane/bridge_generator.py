"""Bridge Generator - generates the Rust `extern "C"` entry points"""

from .registry import Registry
from .type_mapper import TypeMapper
from .types import Declaration, OutputStyle

TASK_HANDLE = "::membrane::TaskHandle"


class BridgeGenerator:
    """Generates Rust bridge code, grouped by the module that declares each function.

    Each generated module file is meant to be included at the end of the Rust
    module it was generated from, so the declared functions, statics and
    types resolve exactly as they are written there.
    """

    def __init__(self, registry: Registry):
        self.registry = registry

    def generate(self) -> dict[str, str]:
        """Map of ``bridge/<module>.rs`` paths to their contents"""
        modules: dict[tuple, list[Declaration]] = {}
        for decl in self.registry.declarations:
            modules.setdefault(decl.module_path, []).append(decl)

        files = {"bridge/membrane_task.rs": self.generate_task_support()}
        for module_path, decls in modules.items():
            name = "_".join(module_path) or "lib"
            files[f"bridge/{name}.rs"] = self.generate_module(module_path, decls)
        return files

    def generate_module(self, module_path: tuple, decls: list[Declaration]) -> str:
        module = "::".join(("crate",) + tuple(module_path))
        lines = [
            "// AUTO-GENERATED - DO NOT EDIT",
            f"// include!() this file at the end of `{module}`",
            "",
        ]
        for decl in decls:
            lines.extend(self.entry_point(decl))
        return "\n".join(lines)

    def generate_task_support(self) -> str:
        """Cancel and release functions for task handles, included once at the crate root.

        Also defines the serde ``with`` modules that 128-bit fields of
        reflected types use to travel as decimal strings.
        """
        return "\n".join([
            "// AUTO-GENERATED - DO NOT EDIT",
            "",
            "#[no_mangle]",
            f"pub extern \"C\" fn membrane_cancel_membrane_task(task_handle: *mut {TASK_HANDLE}) -> bool {{",
            "    if task_handle.is_null() {",
            "        return false;",
            "    }",
            "    // aborting an already finished or aborted task has no effect",
            "    unsafe { &*task_handle }.0.abort();",
            "    true",
            "}",
            "",
            "#[no_mangle]",
            f"pub extern \"C\" fn membrane_drop_membrane_task(task_handle: *mut {TASK_HANDLE}) {{",
            "    if !task_handle.is_null() {",
            "        drop(unsafe { ::std::boxed::Box::from_raw(task_handle) });",
            "    }",
            "}",
            "",
            *self.generate_decimal_module(),
        ])

    def generate_decimal_module(self) -> list[str]:
        module = TypeMapper.DECIMAL_MODULE
        return [
            f"/// `#[serde(with = \"crate::{module}\")]` on `i128`/`u128` fields,",
            f"/// `crate::{module}::option` and `crate::{module}::vec` on `Option`/`Vec` of them",
            f"pub mod {module} {{",
            "    use ::std::fmt::Display;",
            "    use ::std::str::FromStr;",
            "",
            "    pub fn serialize<T: Display, S: ::serde::Serializer>(value: &T, serializer: S) -> Result<S::Ok, S::Error> {",
            "        serializer.collect_str(value)",
            "    }",
            "",
            "    pub fn deserialize<'de, T, D>(deserializer: D) -> Result<T, D::Error>",
            "    where",
            "        T: FromStr,",
            "        T::Err: Display,",
            "        D: ::serde::Deserializer<'de>,",
            "    {",
            "        let text: ::std::string::String = ::serde::Deserialize::deserialize(deserializer)?;",
            "        text.parse().map_err(::serde::de::Error::custom)",
            "    }",
            "",
            "    pub mod option {",
            "        use ::std::fmt::Display;",
            "        use ::std::str::FromStr;",
            "",
            "        pub fn serialize<T: Display, S: ::serde::Serializer>(",
            "            value: &::std::option::Option<T>,",
            "            serializer: S,",
            "        ) -> Result<S::Ok, S::Error> {",
            "            let text = value.as_ref().map(|v| v.to_string());",
            "            ::serde::Serialize::serialize(&text, serializer)",
            "        }",
            "",
            "        pub fn deserialize<'de, T, D>(deserializer: D) -> Result<::std::option::Option<T>, D::Error>",
            "        where",
            "            T: FromStr,",
            "            T::Err: Display,",
            "            D: ::serde::Deserializer<'de>,",
            "        {",
            "            let text: ::std::option::Option<::std::string::String> = ::serde::Deserialize::deserialize(deserializer)?;",
            "            text.map(|t| t.parse().map_err(::serde::de::Error::custom)).transpose()",
            "        }",
            "    }",
            "",
            "    pub mod vec {",
            "        use ::std::fmt::Display;",
            "        use ::std::str::FromStr;",
            "",
            "        pub fn serialize<T: Display, S: ::serde::Serializer>(",
            "            value: &[T],",
            "            serializer: S,",
            "        ) -> Result<S::Ok, S::Error> {",
            "            let text: ::std::vec::Vec<_> = value.iter().map(|v| v.to_string()).collect();",
            "            ::serde::Serialize::serialize(&text, serializer)",
            "        }",
            "",
            "        pub fn deserialize<'de, T, D>(deserializer: D) -> Result<::std::vec::Vec<T>, D::Error>",
            "        where",
            "            T: FromStr,",
            "            T::Err: Display,",
            "            D: ::serde::Deserializer<'de>,",
            "        {",
            "            let text: ::std::vec::Vec<::std::string::String> = ::serde::Deserialize::deserialize(deserializer)?;",
            "            text.into_iter().map(|t| t.parse().map_err(::serde::de::Error::custom)).collect()",
            "        }",
            "    }",
            "}",
            "",
        ]

    def extern_signature(self, decl: Declaration) -> tuple[str, list[str]]:
        """``(symbol, [rust parameter types])`` of the exported function, port first"""
        return decl.symbol, ["i64"] + [TypeMapper.abi(p.type).rust for p in decl.params]

    def entry_point(self, decl: Declaration) -> list[str]:
        params = ["_port: i64"] + [TypeMapper.to_rust_param(p) for p in decl.params]
        lines = [
            "#[no_mangle]",
            "#[allow(clippy::not_unsafe_ptr_arg_deref)]",
            f"pub extern \"C\" fn {decl.symbol}({', '.join(params)}) -> *mut {TASK_HANDLE} {{",
            "    use crate::RUNTIME;",
            "",
        ]
        if not decl.disable_logging:
            lines.append(f'    ::membrane::log::debug!("{decl.symbol}");')

        for param in decl.params:
            lines.extend(f"    {line}" for line in TypeMapper.rust_transform(param))

        lines.extend([
            "    let _isolate = ::membrane::allo_isolate::Isolate::new(_port);",
            "    let (membrane_future_handle, membrane_future_registration) =",
            "        ::membrane::futures::future::AbortHandle::new_pair();",
            "",
            "    RUNTIME.spawn(::membrane::futures::future::Abortable::new(",
            "        async move {",
        ])
        lines.extend(f"            {line}" if line else "" for line in self._task_body(decl))
        lines.extend([
            "        },",
            "        membrane_future_registration,",
            "    ));",
            "",
            f"    ::std::boxed::Box::into_raw(::std::boxed::Box::new({TASK_HANDLE}(membrane_future_handle)))",
            "}",
            "",
        ])
        return lines

    def _task_body(self, decl: Declaration) -> list[str]:
        result_type = f"::std::result::Result<{decl.success_type}, {decl.error_type}>"
        args = ", ".join(p.name for p in decl.params)

        if decl.output_style is OutputStyle.SERIALIZED:
            return [
                f"let result: {result_type} = {decl.name}({args}).await;",
                *self._post(decl),
            ]

        if decl.output_style is OutputStyle.STREAM_SERIALIZED:
            call = f"{decl.name}({args})" + (".await" if decl.is_async else "")
            head = [
                "use ::membrane::futures::stream::StreamExt;",
                f"let stream = {call};",
                "::membrane::futures::pin_mut!(stream);",
                "while let Some(result) = stream.next().await {",
            ]
        else:
            head = [
                f"let receiver = {decl.name}.1.clone();",
                "while let Ok(result) = receiver.recv().await {",
            ]
        return head + [
            f"    let result: {result_type} = result;",
            *(f"    {line}" for line in self._post(decl)),
            "}",
            "// an empty buffer tells the client the sequence has ended",
            "_isolate.post(::membrane::allo_isolate::ZeroCopyBuffer(::std::vec::Vec::<u8>::new()));",
        ]

    def _post(self, decl: Declaration) -> list[str]:
        """Serialize one envelope and post it; an envelope that fails to encode is dropped"""
        if decl.disable_logging:
            dropped = "Err(_) => {}"
        else:
            dropped = f'Err(err) => ::membrane::log::error!("{decl.symbol}: dropped a result that failed to serialize: {{}}", err),'
        value = TypeMapper.rust_to_wire(decl.success_type, "value")
        err = TypeMapper.rust_to_wire(decl.error_type, "err")
        return [
            "let envelope = match result {",
            f"    Ok(value) => ::membrane::bincode::serialize(&(true, {value})),",
            f"    Err(err) => ::membrane::bincode::serialize(&(false, {err})),",
            "};",
            "match envelope {",
            "    Ok(buffer) => {",
            "        _isolate.post(::membrane::allo_isolate::ZeroCopyBuffer(buffer));",
            "    }",
            f"    {dropped}",
            "}",
        ]
